"""Cookie synchronizer: keeps the stored cookie snapshot in step with each engine."""

import asyncio
import logging

from kiosk.engine.base import EnginePage
from kiosk.errors import SessionNotFound, StaleTarget
from kiosk.models.session import Cookie, SessionStatus
from kiosk.services.registry import SessionRegistry
from kiosk.services.store import SessionStore

logger = logging.getLogger(__name__)


class CookieSynchronizer:
    """Harvests live cookie jars into the session store.

    Each sync replaces the stored set wholesale (delete-then-insert), so
    cookies the engine has expired or cleared never linger in storage.
    Besides on-demand syncs it runs one periodic task per running session.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: SessionStore,
        interval: float = 300,
    ) -> None:
        self._registry = registry
        self._store = store
        self._interval = interval
        self._periodic: dict[str, asyncio.Task[None]] = {}
        self._background: dict[str, set[asyncio.Task[bool]]] = {}

    # ── on-demand sync ──────────────────────────────────────────

    async def harvest_and_replace(
        self, session_id: str, page: EnginePage | None = None
    ) -> list[Cookie]:
        """Read the full live jar and make it the stored snapshot.

        *page* may be given for an engine that is not registered yet (during
        start); otherwise the registered handle is used.

        Raises:
            SessionNotFound: no page given and no engine registered.
        """
        if page is None:
            handle = await self._registry.acquire(session_id)
            if handle is None:
                raise SessionNotFound(
                    f"Session {session_id} is not running", session_id=session_id
                )
            page = handle.page

        raw_cookies = await page.cookies()
        cookies = [Cookie.from_engine(raw, session_id) for raw in raw_cookies]
        await self._store.replace_cookies(session_id, cookies)
        logger.info(f"Saved {len(cookies)} cookies for session {session_id}")
        return cookies

    async def sync_quietly(
        self, session_id: str, page: EnginePage | None = None
    ) -> bool:
        """Best-effort harvest: failures are logged, never raised."""
        try:
            await self.harvest_and_replace(session_id, page)
            return True
        except (SessionNotFound, StaleTarget) as e:
            logger.debug(f"Skipping cookie sync for session {session_id}: {e}")
        except Exception as e:
            logger.warning(f"Failed to save cookies for session {session_id}: {e}")
        return False

    def sync_in_background(self, session_id: str) -> asyncio.Task[bool]:
        """Schedule a best-effort sync without waiting for it."""
        task = asyncio.create_task(self.sync_quietly(session_id))
        tasks = self._background.setdefault(session_id, set())
        tasks.add(task)

        def _done(finished: asyncio.Task[bool]) -> None:
            tasks.discard(finished)
            if not tasks and self._background.get(session_id) is tasks:
                del self._background[session_id]

        task.add_done_callback(_done)
        return task

    async def wait_background(self, session_id: str) -> None:
        """Wait for the session's in-flight background syncs to finish."""
        tasks = self._background.get(session_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── periodic sync ───────────────────────────────────────────

    def start_periodic(self, session_id: str) -> None:
        """Start the recurring sync for a session (no-op if already running)."""
        task = self._periodic.get(session_id)
        if task is not None and not task.done():
            return
        self._periodic[session_id] = asyncio.create_task(
            self._periodic_loop(session_id)
        )
        logger.debug(f"Periodic cookie sync started for session {session_id}")

    async def cancel_periodic(self, session_id: str) -> None:
        task = self._periodic.pop(session_id, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Periodic cookie sync cancelled for session {session_id}")

    async def close(self) -> None:
        """Cancel every periodic task and wait for in-flight background syncs."""
        for session_id in list(self._periodic):
            await self.cancel_periodic(session_id)
        pending = [t for tasks in self._background.values() for t in tasks]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def is_periodic_active(self, session_id: str) -> bool:
        task = self._periodic.get(session_id)
        return task is not None and not task.done()

    async def _periodic_loop(self, session_id: str) -> None:
        """Sync every interval until the session stops running."""
        try:
            while True:
                await asyncio.sleep(self._interval)

                if await self._registry.acquire(session_id) is None:
                    logger.debug(f"Session {session_id} has no engine, ending cookie sync")
                    break
                try:
                    record = await self._store.get_session(session_id)
                except Exception as e:
                    logger.warning(f"Cookie sync could not load session {session_id}: {e}")
                    continue
                if record is None or record.status != SessionStatus.RUNNING:
                    logger.debug(f"Session {session_id} no longer running, ending cookie sync")
                    break

                await self.sync_quietly(session_id)
        finally:
            current = asyncio.current_task()
            if self._periodic.get(session_id) is current:
                del self._periodic[session_id]
