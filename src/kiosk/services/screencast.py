"""Screencast relay: one capture per engine, fanned out to every viewer."""

import asyncio
import logging
from typing import Any, Protocol

from kiosk.engine.base import ControlChannel
from kiosk.errors import SessionNotFound
from kiosk.models.messages import FrameMessage
from kiosk.services.registry import EngineHandle, SessionRegistry

logger = logging.getLogger(__name__)


class ViewerConnection(Protocol):
    """The sending half of a live viewer socket."""

    @property
    def is_open(self) -> bool: ...

    async def send_json(self, data: dict[str, Any]) -> None: ...


class ScreencastRelay:
    """Streams frames from each engine's control channel to its subscribers.

    Capture runs only while a handle has at least one subscriber. The first
    subscriber opens the control channel and starts the screencast, later
    ones reuse it, and the last one to leave stops it again.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        image_format: str = "jpeg",
        quality: int = 80,
        every_nth_frame: int = 1,
        send_timeout: float = 5,
    ) -> None:
        self._registry = registry
        self._format = image_format
        self._quality = quality
        self._every_nth_frame = every_nth_frame
        self._send_timeout = send_timeout

    async def subscribe(self, session_id: str, connection: ViewerConnection) -> None:
        """Attach *connection* to the session's frame stream.

        Raises:
            SessionNotFound: the session has no live engine.
        """
        handle = await self._registry.acquire(session_id)
        if handle is None:
            raise SessionNotFound(
                f"Session {session_id} is not running", session_id=session_id
            )

        async with handle.lock:
            handle.subscribers.add(connection)
            if handle.control_channel is not None:
                logger.debug(f"Reusing active screencast for session {session_id}")
            else:
                try:
                    await self._start_capture(handle)
                except Exception:
                    handle.subscribers.discard(connection)
                    raise
            count = len(handle.subscribers)

        logger.info(f"Viewer subscribed to session {session_id} ({count} active)")

    async def unsubscribe(self, session_id: str, connection: ViewerConnection) -> None:
        """Detach *connection*; stops capture when no viewers remain."""
        handle = await self._registry.acquire(session_id)
        if handle is None:
            return

        async with handle.lock:
            if connection not in handle.subscribers:
                return
            handle.subscribers.discard(connection)
            remaining = len(handle.subscribers)
            if remaining == 0 and handle.control_channel is not None:
                await self._stop_capture(handle)

        logger.info(f"Viewer left session {session_id} ({remaining} remaining)")

    async def teardown(self, handle: EngineHandle) -> None:
        """Drop every subscriber and stop capture, ahead of closing the engine."""
        async with handle.lock:
            handle.subscribers.clear()
            if handle.control_channel is not None:
                await self._stop_capture(handle)

    async def subscriber_count(self, session_id: str) -> int:
        handle = await self._registry.acquire(session_id)
        return len(handle.subscribers) if handle else 0

    # -- capture -------------------------------------------------------------

    async def _start_capture(self, handle: EngineHandle) -> None:
        channel = await handle.page.open_control_channel()

        async def on_frame(params: dict[str, Any]) -> None:
            await self._handle_frame(handle, channel, params)

        channel.on("Page.screencastFrame", on_frame)
        try:
            await channel.send(
                "Page.startScreencast",
                {
                    "format": self._format,
                    "quality": self._quality,
                    "maxWidth": handle.viewport_width,
                    "maxHeight": handle.viewport_height,
                    "everyNthFrame": self._every_nth_frame,
                },
            )
        except Exception as e:
            logger.error(f"Failed to start screencast for session {handle.session_id}: {e}")
            await self._detach_quietly(channel, handle.session_id)
            raise

        handle.control_channel = channel
        logger.info(
            f"Screencast started for session {handle.session_id} "
            f"({handle.viewport_width}x{handle.viewport_height})"
        )

    async def _stop_capture(self, handle: EngineHandle) -> None:
        channel = handle.control_channel
        handle.control_channel = None
        if channel is None:
            return
        try:
            await channel.send("Page.stopScreencast")
        except Exception as e:
            logger.debug(f"stopScreencast failed for session {handle.session_id}: {e}")
        await self._detach_quietly(channel, handle.session_id)
        logger.info(f"Screencast stopped for session {handle.session_id}")

    async def _detach_quietly(self, channel: ControlChannel, session_id: str) -> None:
        try:
            await channel.detach()
        except Exception as e:
            logger.debug(f"Control channel detach failed for session {session_id}: {e}")

    # -- frames --------------------------------------------------------------

    async def _handle_frame(
        self, handle: EngineHandle, channel: ControlChannel, params: dict[str, Any]
    ) -> None:
        # The engine holds the next frame back until this one is acknowledged
        try:
            await channel.send(
                "Page.screencastFrameAck", {"sessionId": params.get("sessionId")}
            )
        except Exception as e:
            logger.debug(f"Frame ack failed for session {handle.session_id}: {e}")

        if handle.control_channel is not channel:
            return

        frame = FrameMessage(
            data=params.get("data", ""), metadata=params.get("metadata") or {}
        ).model_dump()
        viewers = [c for c in list(handle.subscribers) if c.is_open]
        if not viewers:
            return

        results = await asyncio.gather(
            *(self._deliver(viewer, frame) for viewer in viewers),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(
                    f"Error sending frame to viewer of session {handle.session_id}: "
                    f"{result!r}"
                )

    async def _deliver(self, viewer: ViewerConnection, frame: dict[str, Any]) -> None:
        async with asyncio.timeout(self._send_timeout):
            await viewer.send_json(frame)
