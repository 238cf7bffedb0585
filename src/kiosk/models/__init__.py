from .messages import (
    FrameMessage,
    KeyEventMessage,
    KeyEventType,
    MouseEventMessage,
    MouseEventType,
    ScrollMessage,
    ViewerMessage,
    parse_viewer_message,
)
from .session import BrowserSession, Cookie, SessionStatus

__all__ = [
    # Viewer wire messages
    "FrameMessage",
    "KeyEventMessage",
    "KeyEventType",
    "MouseEventMessage",
    "MouseEventType",
    "ScrollMessage",
    "ViewerMessage",
    "parse_viewer_message",
    # Domain models
    "BrowserSession",
    "Cookie",
    "SessionStatus",
]
