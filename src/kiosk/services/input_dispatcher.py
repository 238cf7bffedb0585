"""Applies viewer input events to the engine of the session they target."""

import logging

from kiosk.errors import StaleTarget
from kiosk.models.messages import (
    KeyEventMessage,
    KeyEventType,
    MouseEventMessage,
    MouseEventType,
    ScrollMessage,
    ViewerMessage,
)
from kiosk.services.cookie_sync import CookieSynchronizer
from kiosk.services.locks import KeyedLock
from kiosk.services.registry import EngineHandle, SessionRegistry

logger = logging.getLogger(__name__)


def rescale(
    handle: EngineHandle, message: MouseEventMessage
) -> tuple[float, float]:
    """Map viewer surface coordinates onto the session viewport.

    Without a surface size the coordinates are taken to be in viewport space
    already.  Results are rounded to whole CSS pixels.
    """
    x, y = message.x, message.y
    if message.surface_width and message.surface_height:
        x = x * handle.viewport_width / message.surface_width
        y = y * handle.viewport_height / message.surface_height
    return round(x), round(y)


class InputDispatcher:
    """Serializes input per session; different sessions never wait on each other."""

    def __init__(
        self, registry: SessionRegistry, cookie_sync: CookieSynchronizer
    ) -> None:
        self._registry = registry
        self._cookie_sync = cookie_sync
        self._locks = KeyedLock()

    async def dispatch(self, session_id: str, message: ViewerMessage) -> bool:
        """Apply one viewer message.

        Returns False when the event was discarded because the session has no
        engine or its page has already been closed.
        """
        handle = await self._registry.acquire(session_id)
        if handle is None:
            logger.debug(f"Discarding {message.type} for inactive session {session_id}")
            return False

        async with self._locks.hold(session_id):
            try:
                await self._apply(handle, message)
            except StaleTarget:
                logger.debug(f"Page closed, ignoring {message.type} for session {session_id}")
                return False

        if (
            isinstance(message, MouseEventMessage)
            and message.event_type == MouseEventType.RELEASED
        ):
            self._cookie_sync.sync_in_background(session_id)
        return True

    async def _apply(self, handle: EngineHandle, message: ViewerMessage) -> None:
        page = handle.page
        if isinstance(message, MouseEventMessage):
            x, y = rescale(handle, message)
            button = message.button or "left"
            logger.debug(
                f"Mouse {message.event_type.value} at ({x}, {y}) button={button} "
                f"session={handle.session_id}"
            )
            if message.event_type == MouseEventType.MOVED:
                await page.mouse_move(x, y)
            elif message.event_type == MouseEventType.PRESSED:
                await page.mouse_move(x, y)
                await page.mouse_down(button)
            else:
                await page.mouse_up(button)

        elif isinstance(message, KeyEventMessage):
            logger.debug(
                f"Key {message.event_type.value} {message.key!r} session={handle.session_id}"
            )
            if message.event_type == KeyEventType.DOWN:
                await page.key_down(message.key, message.text)
            else:
                await page.key_up(message.key)

        elif isinstance(message, ScrollMessage):
            await page.scroll(message.delta_x, message.delta_y)
