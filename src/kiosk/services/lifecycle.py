"""Session lifecycle: start, pause, resume, stop and the page operations on top."""

import asyncio
import logging

from kiosk.config import Settings
from kiosk.engine.base import BLANK_URL, EngineDriver, EnginePage, LaunchOptions
from kiosk.errors import SessionNotFound
from kiosk.models.session import BrowserSession, Cookie, SessionStatus
from kiosk.services.cookie_sync import CookieSynchronizer
from kiosk.services.locks import KeyedLock
from kiosk.services.registry import EngineHandle, SessionRegistry
from kiosk.services.screencast import ScreencastRelay
from kiosk.services.store import SessionStore

logger = logging.getLogger(__name__)


class LifecycleController:
    """Drives sessions between stopped, running, paused and error.

    The registry holds the live engines; the store holds what survives a
    restart.  Transitions for one session are serialized: a second
    concurrent start finds the first one's engine and does nothing, and a
    resume racing a stop runs wholly before or after it.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: SessionStore,
        driver: EngineDriver,
        cookie_sync: CookieSynchronizer,
        relay: ScreencastRelay,
        settings: Settings,
    ) -> None:
        self._registry = registry
        self._store = store
        self._driver = driver
        self._cookie_sync = cookie_sync
        self._relay = relay
        self._settings = settings
        self._locks = KeyedLock()

    # ── state transitions ───────────────────────────────────────

    async def start(self, session_id: str) -> BrowserSession:
        """Launch the session's engine unless one is already live.

        Raises:
            SessionNotFound: no such session record.
            LaunchFailure: the engine could not be started.
            NavigationTimeout: the target URL did not load in time.
        """
        async with self._locks.hold(session_id):
            return await self._start_locked(session_id)

    async def pause(self, session_id: str) -> BrowserSession:
        """Label a running session paused; the engine stays alive."""
        async with self._locks.hold(session_id):
            await self._require(session_id)
            await self._cookie_sync.cancel_periodic(session_id)
            await self._cookie_sync.wait_background(session_id)
            await self._cookie_sync.sync_quietly(session_id)
            record = await self._set_status(session_id, SessionStatus.PAUSED)
            logger.info(f"Session {session_id} paused")
            return record

    async def resume(self, session_id: str) -> BrowserSession:
        """Mark a live session running again, or start it if it has no engine."""
        async with self._locks.hold(session_id):
            if await self._registry.acquire(session_id) is None:
                return await self._start_locked(session_id)

            record = await self._set_status(session_id, SessionStatus.RUNNING)
            self._cookie_sync.start_periodic(session_id)
            logger.info(f"Session {session_id} resumed")
            return record

    async def stop(self, session_id: str) -> BrowserSession:
        """Close the session's engine (if any) and persist status=stopped."""
        async with self._locks.hold(session_id):
            await self._cookie_sync.cancel_periodic(session_id)
            await self._cookie_sync.wait_background(session_id)

            if await self._registry.acquire(session_id) is not None:
                await self._cookie_sync.sync_quietly(session_id)
                handle = await self._registry.release(session_id)
                if handle is not None:
                    await self._teardown(handle)

            record = await self._set_status(session_id, SessionStatus.STOPPED)
            logger.info(f"Session {session_id} stopped")
            return record

    async def delete(self, session_id: str) -> bool:
        """Stop the session and remove its record and cookies."""
        try:
            await self.stop(session_id)
        except SessionNotFound:
            pass
        except Exception as e:
            logger.warning(f"Error stopping session {session_id} before delete: {e}")

        deleted = await self._store.delete_session(session_id)
        if deleted:
            logger.info(f"Deleted session {session_id}")
        return deleted

    async def restore_all(self) -> list[str]:
        """Start every session last persisted as running.

        One session failing to start is logged and does not stop the others.

        Returns:
            Ids of the sessions that were restored.
        """
        records = await self._store.list_sessions(status=SessionStatus.RUNNING)
        logger.info(f"Restoring {len(records)} running session(s)")

        restored: list[str] = []
        for record in records:
            try:
                await self.start(record.session_id)
                restored.append(record.session_id)
            except Exception as e:
                logger.error(f"Failed to restore session {record.session_id}: {e}")
        return restored

    async def shutdown(self) -> None:
        """Save cookies and close every live engine.

        Stored statuses are left as they are, so sessions that were running
        are picked up again by ``restore_all`` on the next start.
        """
        await self._cookie_sync.close()
        handles = await self._registry.drain()
        if not handles:
            return

        logger.info(f"Shutting down {len(handles)} browser session(s)")

        async def _close(handle: EngineHandle) -> None:
            await self._cookie_sync.sync_quietly(handle.session_id, handle.page)
            await self._teardown(handle)

        results = await asyncio.gather(
            *(_close(h) for h in handles), return_exceptions=True
        )
        for handle, result in zip(handles, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to clean up session {handle.session_id}: {result}")

    # ── page operations ─────────────────────────────────────────

    async def navigate(self, session_id: str, url: str) -> str:
        """Open *url* in the session and make it the session's target URL."""
        handle = await self._require(session_id)
        await self._open(handle.page, url)
        await self._store.update_session(session_id, url=url)
        await self._cookie_sync.sync_quietly(session_id)
        return handle.page.url

    async def go_back(self, session_id: str) -> str:
        handle = await self._require(session_id)
        await handle.page.go_back(self._settings.history_timeout)
        await self._cookie_sync.sync_quietly(session_id)
        return handle.page.url

    async def go_forward(self, session_id: str) -> str:
        handle = await self._require(session_id)
        await handle.page.go_forward(self._settings.history_timeout)
        await self._cookie_sync.sync_quietly(session_id)
        return handle.page.url

    async def refresh(self, session_id: str) -> str:
        handle = await self._require(session_id)
        await handle.page.reload(self._settings.history_timeout)
        await self._cookie_sync.sync_quietly(session_id)
        return handle.page.url

    async def click(
        self, session_id: str, x: float, y: float, button: str = "left"
    ) -> None:
        handle = await self._require(session_id)
        await handle.page.click(x, y, button)
        await self._cookie_sync.sync_quietly(session_id)

    async def type_text(self, session_id: str, text: str) -> None:
        handle = await self._require(session_id)
        await handle.page.type_text(text)

    async def press_key(self, session_id: str, key: str) -> None:
        handle = await self._require(session_id)
        await handle.page.press_key(key)

    async def upload_file(self, session_id: str, path: str) -> None:
        """Hand *path* to the file input on the session's current page.

        Raises:
            FileInputNotFound: the page has no file input.
        """
        handle = await self._require(session_id)
        await handle.page.upload_file(path, self._settings.file_input_timeout)

    async def get_screenshot(self, session_id: str) -> bytes:
        handle = await self._require(session_id)
        return await handle.page.screenshot()

    async def get_current_url(self, session_id: str) -> str:
        handle = await self._require(session_id)
        return handle.page.url

    async def get_cookies(self, session_id: str) -> list[Cookie]:
        return await self._store.get_cookies(session_id)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._registry

    def active_count(self) -> int:
        return len(self._registry)

    # ── helpers ─────────────────────────────────────────────────

    async def _start_locked(self, session_id: str) -> BrowserSession:
        record = await self._store.get_session(session_id)
        if record is None:
            raise SessionNotFound(
                f"Session {session_id} not found", session_id=session_id
            )

        if await self._registry.acquire(session_id) is not None:
            logger.debug(f"Session {session_id} already has a live engine")
            if record.status != SessionStatus.RUNNING:
                record = await self._set_status(session_id, SessionStatus.RUNNING)
            self._cookie_sync.start_periodic(session_id)
            return record

        logger.info(f"Starting session {session_id} ({record.url or BLANK_URL})")
        try:
            handle = await self._launch(record)
        except Exception as e:
            logger.error(f"Failed to start session {session_id}: {e}")
            await self._mark_error(session_id)
            raise

        registered = await self._registry.register(handle)
        if registered is not handle:
            await self._close_quietly(handle.page, session_id)
        else:
            try:
                record = await self._set_status(session_id, SessionStatus.RUNNING)
            except Exception:
                await self._registry.release(session_id)
                await self._close_quietly(handle.page, session_id)
                await self._mark_error(session_id)
                raise

        self._cookie_sync.start_periodic(session_id)
        logger.info(f"Session {session_id} running")
        return record

    async def _require(self, session_id: str) -> EngineHandle:
        handle = await self._registry.acquire(session_id)
        if handle is None:
            raise SessionNotFound(
                f"Session {session_id} is not running", session_id=session_id
            )
        return handle

    async def _launch(self, record: BrowserSession) -> EngineHandle:
        page = await self._driver.launch(
            LaunchOptions(
                viewport_width=record.viewport_width,
                viewport_height=record.viewport_height,
                user_agent=record.user_agent,
            )
        )
        try:
            await self._import_cookies(record.session_id, page)
            await self._open(page, record.url)
            await self._cookie_sync.sync_quietly(record.session_id, page)
        except BaseException:
            await self._close_quietly(page, record.session_id)
            raise

        return EngineHandle(
            session_id=record.session_id,
            page=page,
            viewport_width=record.viewport_width,
            viewport_height=record.viewport_height,
        )

    async def _import_cookies(self, session_id: str, page: EnginePage) -> None:
        cookies = [c for c in await self._store.get_cookies(session_id) if c.domain]
        if not cookies:
            return
        await page.add_cookies([c.to_engine() for c in cookies])
        logger.info(f"Loaded {len(cookies)} cookies for session {session_id}")

    async def _open(self, page: EnginePage, url: str) -> None:
        if not url or url == BLANK_URL:
            await page.goto(
                BLANK_URL, self._settings.blank_page_timeout, wait_until="load"
            )
        else:
            await page.goto(url, self._settings.navigation_timeout)

    async def _teardown(self, handle: EngineHandle) -> None:
        await self._relay.teardown(handle)
        await self._close_quietly(handle.page, handle.session_id)

    async def _close_quietly(self, page: EnginePage, session_id: str) -> None:
        try:
            await page.close()
        except Exception as e:
            logger.warning(f"Error closing browser for session {session_id}: {e}")

    async def _set_status(
        self, session_id: str, status: SessionStatus
    ) -> BrowserSession:
        record = await self._store.update_session(session_id, status=status)
        if record is None:
            raise SessionNotFound(
                f"Session {session_id} not found", session_id=session_id
            )
        return record

    async def _mark_error(self, session_id: str) -> None:
        try:
            await self._store.update_session(session_id, status=SessionStatus.ERROR)
        except Exception as e:
            logger.error(f"Failed to record error status for session {session_id}: {e}")
