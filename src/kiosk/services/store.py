"""Session store: durable session records and cookie snapshots.

The core only talks to the ``SessionStore`` protocol.  Two backings ship:
``DatabaseSessionStore`` (SQLAlchemy, one transaction per call) and
``MemorySessionStore`` (process memory, for single-node or test setups).
"""

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kiosk.db.engine import get_session
from kiosk.db.repositories import BrowserSessionRepository, CookieRepository
from kiosk.models.session import BrowserSession, Cookie, SessionStatus

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Storage interface consumed by the session core."""

    async def get_session(self, session_id: str) -> BrowserSession | None: ...

    async def list_sessions(
        self,
        user_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[BrowserSession]: ...

    async def create_session(
        self,
        user_id: str,
        url: str = "",
        user_agent: str | None = None,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        session_data: dict[str, Any] | None = None,
        session_id: str | None = None,
        status: SessionStatus = SessionStatus.STOPPED,
    ) -> BrowserSession: ...

    async def update_session(
        self, session_id: str, **changes: Any
    ) -> BrowserSession | None: ...

    async def delete_session(self, session_id: str) -> bool: ...

    async def get_cookies(self, session_id: str) -> list[Cookie]: ...

    async def replace_cookies(self, session_id: str, cookies: list[Cookie]) -> None:
        """Atomically swap the stored snapshot for *cookies*."""
        ...

    async def clear_cookies(self, session_id: str) -> None: ...


class DatabaseSessionStore:
    """SessionStore backed by the SQL database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_session(self, session_id: str) -> BrowserSession | None:
        async with self._session_factory() as session:
            model = await BrowserSessionRepository(session).get(session_id)
            return BrowserSession.from_model(model) if model else None

    async def list_sessions(
        self,
        user_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[BrowserSession]:
        async with self._session_factory() as session:
            repo = BrowserSessionRepository(session)
            if user_id is not None:
                models = await repo.list_by_user(user_id)
                if status is not None:
                    models = [m for m in models if m.status == status]
            elif status is not None:
                models = await repo.list_by_status(status)
            else:
                models = await repo.list_all()
            return [BrowserSession.from_model(m) for m in models]

    async def create_session(
        self,
        user_id: str,
        url: str = "",
        user_agent: str | None = None,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        session_data: dict[str, Any] | None = None,
        session_id: str | None = None,
        status: SessionStatus = SessionStatus.STOPPED,
    ) -> BrowserSession:
        async with get_session(self._session_factory) as session:
            model = await BrowserSessionRepository(session).create(
                user_id=user_id,
                url=url,
                user_agent=user_agent,
                viewport_width=viewport_width,
                viewport_height=viewport_height,
                session_data=session_data,
                session_id=session_id,
                status=status,
            )
            record = BrowserSession.from_model(model)
        logger.info(f"Created browser session {record.session_id} for user {user_id}")
        return record

    async def update_session(
        self, session_id: str, **changes: Any
    ) -> BrowserSession | None:
        async with get_session(self._session_factory) as session:
            model = await BrowserSessionRepository(session).update(session_id, **changes)
            return BrowserSession.from_model(model) if model else None

    async def delete_session(self, session_id: str) -> bool:
        async with get_session(self._session_factory) as session:
            # Explicit so backends without FK cascades don't leave orphans
            await CookieRepository(session).clear(session_id)
            return await BrowserSessionRepository(session).delete(session_id)

    async def get_cookies(self, session_id: str) -> list[Cookie]:
        async with self._session_factory() as session:
            models = await CookieRepository(session).list_for_session(session_id)
            return [Cookie.from_model(m) for m in models]

    async def replace_cookies(self, session_id: str, cookies: list[Cookie]) -> None:
        async with get_session(self._session_factory) as session:
            await CookieRepository(session).replace(
                session_id, [c.to_row() for c in cookies]
            )

    async def clear_cookies(self, session_id: str) -> None:
        async with get_session(self._session_factory) as session:
            await CookieRepository(session).clear(session_id)


class MemorySessionStore:
    """SessionStore kept in process memory.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, BrowserSession] = {}
        self._cookies: dict[str, list[Cookie]] = {}
        self._lock = asyncio.Lock()

    async def get_session(self, session_id: str) -> BrowserSession | None:
        async with self._lock:
            record = self._sessions.get(session_id)
            return replace(record) if record else None

    async def list_sessions(
        self,
        user_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[BrowserSession]:
        async with self._lock:
            records = sorted(
                self._sessions.values(),
                key=lambda s: s.created_at or datetime.min.replace(tzinfo=timezone.utc),
            )
            return [
                replace(s)
                for s in records
                if (user_id is None or s.user_id == user_id)
                and (status is None or s.status == status)
            ]

    async def create_session(
        self,
        user_id: str,
        url: str = "",
        user_agent: str | None = None,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        session_data: dict[str, Any] | None = None,
        session_id: str | None = None,
        status: SessionStatus = SessionStatus.STOPPED,
    ) -> BrowserSession:
        now = datetime.now(timezone.utc)
        record = BrowserSession(
            session_id=session_id or str(uuid.uuid4()),
            user_id=user_id,
            url=url,
            status=status,
            user_agent=user_agent,
            viewport_width=viewport_width,
            viewport_height=viewport_height,
            session_data=session_data,
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._sessions[record.session_id] = record
        logger.info(f"Created browser session {record.session_id} for user {user_id}")
        return replace(record)

    async def update_session(
        self, session_id: str, **changes: Any
    ) -> BrowserSession | None:
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return None
            now = datetime.now(timezone.utc)
            updates = {k: v for k, v in changes.items() if v is not None}
            if updates.get("status") == SessionStatus.RUNNING:
                updates["last_activity_at"] = now
            record = replace(record, **updates, updated_at=now)
            self._sessions[session_id] = record
            return replace(record)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            self._cookies.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    async def get_cookies(self, session_id: str) -> list[Cookie]:
        async with self._lock:
            return [replace(c) for c in self._cookies.get(session_id, [])]

    async def replace_cookies(self, session_id: str, cookies: list[Cookie]) -> None:
        now = datetime.now(timezone.utc)
        snapshot = [replace(c, session_id=session_id, created_at=now) for c in cookies]
        async with self._lock:
            self._cookies[session_id] = snapshot

    async def clear_cookies(self, session_id: str) -> None:
        async with self._lock:
            self._cookies.pop(session_id, None)
