"""Database module for kiosk."""

from kiosk.db.engine import create_engine, create_session_factory, get_session
from kiosk.db.models import (
    Base,
    BrowserSessionModel,
    CookieModel,
    SessionStatus,
)

__all__ = [
    "create_engine",
    "create_session_factory",
    "get_session",
    "Base",
    "BrowserSessionModel",
    "CookieModel",
    "SessionStatus",
]
