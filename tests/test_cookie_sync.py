"""Tests for the CookieSynchronizer service."""

import asyncio

import pytest

from kiosk.errors import SessionNotFound
from kiosk.models import Cookie, SessionStatus
from kiosk.services import (
    CookieSynchronizer,
    EngineHandle,
    MemorySessionStore,
    SessionRegistry,
)

from conftest import make_fake_page

JAR = [
    {
        "name": "sid",
        "value": "abc",
        "domain": ".example.com",
        "path": "/",
        "expires": 1893456000,
        "httpOnly": True,
        "secure": True,
        "sameSite": "Strict",
    },
    {"name": "theme", "value": "dark", "domain": "example.com", "path": "/", "expires": -1},
]


@pytest.fixture
async def running(store: MemorySessionStore, registry: SessionRegistry):
    """A running session with a registered engine whose jar is JAR."""
    record = await store.create_session(
        user_id="user-1", url="https://example.com", status=SessionStatus.RUNNING
    )
    page = make_fake_page()
    page.cookies.return_value = list(JAR)
    handle = EngineHandle(session_id=record.session_id, page=page)
    await registry.register(handle)
    return handle


class TestHarvest:
    """Tests for harvest-and-replace."""

    @pytest.mark.asyncio
    async def test_harvest_stores_full_jar(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore, running: EngineHandle
    ):
        """Test the whole live jar becomes the stored snapshot."""
        harvested = await cookie_sync.harvest_and_replace(running.session_id)

        stored = await store.get_cookies(running.session_id)
        assert stored == harvested
        assert [c.name for c in stored] == ["sid", "theme"]
        assert stored[0].same_site == "Strict"
        assert stored[0].expires is not None
        assert stored[1].expires is None

    @pytest.mark.asyncio
    async def test_harvest_replaces_not_merges(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore, running: EngineHandle
    ):
        """Test cookies the engine no longer has are dropped from storage."""
        await store.replace_cookies(
            running.session_id, [Cookie(name="stale", value="old", domain="example.com")]
        )

        await cookie_sync.harvest_and_replace(running.session_id)

        names = [c.name for c in await store.get_cookies(running.session_id)]
        assert "stale" not in names
        assert names == ["sid", "theme"]

    @pytest.mark.asyncio
    async def test_harvest_is_idempotent(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore, running: EngineHandle
    ):
        """Test repeated syncs with an unchanged jar store the same set."""
        await cookie_sync.harvest_and_replace(running.session_id)
        first = await store.get_cookies(running.session_id)

        await cookie_sync.harvest_and_replace(running.session_id)
        await cookie_sync.harvest_and_replace(running.session_id)
        second = await store.get_cookies(running.session_id)

        assert first == second

    @pytest.mark.asyncio
    async def test_harvest_empty_jar_clears(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore, running: EngineHandle
    ):
        """Test an empty jar clears the stored snapshot."""
        await cookie_sync.harvest_and_replace(running.session_id)
        running.page.cookies.return_value = []

        await cookie_sync.harvest_and_replace(running.session_id)

        assert await store.get_cookies(running.session_id) == []

    @pytest.mark.asyncio
    async def test_harvest_with_explicit_page(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore
    ):
        """Test an unregistered page can be harvested directly."""
        page = make_fake_page()
        page.cookies.return_value = list(JAR)

        await cookie_sync.harvest_and_replace("s-unregistered", page)

        assert len(await store.get_cookies("s-unregistered")) == 2

    @pytest.mark.asyncio
    async def test_harvest_without_engine(self, cookie_sync: CookieSynchronizer):
        """Test harvesting a session without an engine raises SessionNotFound."""
        with pytest.raises(SessionNotFound):
            await cookie_sync.harvest_and_replace("nonexistent")

    @pytest.mark.asyncio
    async def test_sync_quietly_swallows_errors(
        self, cookie_sync: CookieSynchronizer, running: EngineHandle
    ):
        """Test best-effort sync reports failure instead of raising."""
        running.page.cookies.side_effect = RuntimeError("Target closed")

        assert await cookie_sync.sync_quietly(running.session_id) is False
        assert await cookie_sync.sync_quietly("nonexistent") is False

    @pytest.mark.asyncio
    async def test_sync_in_background(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore, running: EngineHandle
    ):
        """Test a background sync completes and stores the jar."""
        task = cookie_sync.sync_in_background(running.session_id)

        assert await task is True
        assert len(await store.get_cookies(running.session_id)) == 2

    @pytest.mark.asyncio
    async def test_wait_background(
        self, cookie_sync: CookieSynchronizer, store: MemorySessionStore, running: EngineHandle
    ):
        """Test waiting on a session covers every sync still in flight for it."""
        release = asyncio.Event()

        async def held_cookies():
            await release.wait()
            return JAR

        running.page.cookies.side_effect = held_cookies
        first = cookie_sync.sync_in_background(running.session_id)
        second = cookie_sync.sync_in_background(running.session_id)

        waiter = asyncio.create_task(cookie_sync.wait_background(running.session_id))
        await asyncio.sleep(0)
        assert not waiter.done()

        release.set()
        await waiter

        assert first.done() and second.done()
        assert len(await store.get_cookies(running.session_id)) == 2
        assert running.session_id not in cookie_sync._background

    @pytest.mark.asyncio
    async def test_wait_background_without_syncs(self, cookie_sync: CookieSynchronizer):
        """Test waiting on a session with nothing in flight returns at once."""
        await asyncio.wait_for(cookie_sync.wait_background("nonexistent"), timeout=1)


class TestPeriodic:
    """Tests for the periodic sync task."""

    @pytest.mark.asyncio
    async def test_periodic_syncs_running_session(
        self, registry: SessionRegistry, store: MemorySessionStore, running: EngineHandle
    ):
        """Test the periodic task keeps syncing while the session runs."""
        cookie_sync = CookieSynchronizer(registry, store, interval=0.01)

        cookie_sync.start_periodic(running.session_id)
        await asyncio.sleep(0.1)

        assert running.page.cookies.await_count >= 2
        assert cookie_sync.is_periodic_active(running.session_id)
        await cookie_sync.close()
        assert not cookie_sync.is_periodic_active(running.session_id)

    @pytest.mark.asyncio
    async def test_periodic_stops_when_handle_released(
        self, registry: SessionRegistry, store: MemorySessionStore, running: EngineHandle
    ):
        """Test the task ends by itself once the engine is gone."""
        cookie_sync = CookieSynchronizer(registry, store, interval=0.01)
        cookie_sync.start_periodic(running.session_id)

        await registry.release(running.session_id)
        await asyncio.sleep(0.05)

        assert not cookie_sync.is_periodic_active(running.session_id)

    @pytest.mark.asyncio
    async def test_periodic_stops_when_not_running(
        self, registry: SessionRegistry, store: MemorySessionStore, running: EngineHandle
    ):
        """Test the task ends by itself once the session leaves running."""
        cookie_sync = CookieSynchronizer(registry, store, interval=0.01)
        cookie_sync.start_periodic(running.session_id)

        await store.update_session(running.session_id, status=SessionStatus.PAUSED)
        await asyncio.sleep(0.05)

        assert not cookie_sync.is_periodic_active(running.session_id)
        running.page.cookies.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_periodic_twice_keeps_one_task(
        self, registry: SessionRegistry, store: MemorySessionStore, running: EngineHandle
    ):
        """Test starting the periodic sync again doesn't add a second task."""
        cookie_sync = CookieSynchronizer(registry, store, interval=60)

        cookie_sync.start_periodic(running.session_id)
        first = cookie_sync._periodic[running.session_id]
        cookie_sync.start_periodic(running.session_id)

        assert cookie_sync._periodic[running.session_id] is first
        await cookie_sync.close()

    @pytest.mark.asyncio
    async def test_cancel_unknown_is_noop(self, cookie_sync: CookieSynchronizer):
        """Test cancelling a session without a task doesn't raise."""
        await cookie_sync.cancel_periodic("nonexistent")
