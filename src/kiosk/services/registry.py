import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from kiosk.engine.base import ControlChannel, EnginePage

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class EngineHandle:
    """A live engine owned by exactly one session.

    ``subscribers`` and ``control_channel`` are only mutated while holding
    ``lock``.
    """

    session_id: str
    page: EnginePage
    viewport_width: int = 1920
    viewport_height: int = 1080
    control_channel: ControlChannel | None = None
    subscribers: set[Any] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    started_at: float = field(default_factory=time.time)

    @property
    def is_capturing(self) -> bool:
        return self.control_channel is not None


class SessionRegistry:
    """Maps session id to its live EngineHandle, at most one per id."""

    def __init__(self) -> None:
        self._handles: dict[str, EngineHandle] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, session_id: str) -> EngineHandle | None:
        async with self._lock:
            return self._handles.get(session_id)

    async def register(self, handle: EngineHandle) -> EngineHandle:
        """Register *handle* unless its session already has one.

        Returns the handle that is registered afterwards; callers compare it
        against their own to detect that they lost a race.
        """
        async with self._lock:
            existing = self._handles.get(handle.session_id)
            if existing is not None:
                logger.warning(
                    f"Session {handle.session_id} already has a live engine, keeping it"
                )
                return existing
            self._handles[handle.session_id] = handle
            logger.info(f"Registered engine for session {handle.session_id}")
            return handle

    async def release(self, session_id: str) -> EngineHandle | None:
        async with self._lock:
            handle = self._handles.pop(session_id, None)
            if handle is not None:
                logger.info(f"Released engine for session {session_id}")
            return handle

    async def drain(self) -> list[EngineHandle]:
        """Remove and return every registered handle."""
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            return handles

    async def session_ids(self) -> list[str]:
        async with self._lock:
            return list(self._handles.keys())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)
