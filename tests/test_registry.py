"""Tests for the SessionRegistry service."""

import asyncio

import pytest

from kiosk.services import EngineHandle, SessionRegistry

from conftest import make_fake_page


def _handle(session_id: str) -> EngineHandle:
    return EngineHandle(session_id=session_id, page=make_fake_page())


class TestSessionRegistry:
    """Tests for SessionRegistry class."""

    @pytest.mark.asyncio
    async def test_register_and_acquire(self, registry: SessionRegistry):
        """Test a registered handle can be acquired by its session id."""
        handle = _handle("s-1")

        registered = await registry.register(handle)

        assert registered is handle
        assert await registry.acquire("s-1") is handle
        assert "s-1" in registry
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_acquire_nonexistent(self, registry: SessionRegistry):
        """Test acquiring an unknown session returns None."""
        assert await registry.acquire("nonexistent") is None

    @pytest.mark.asyncio
    async def test_second_register_keeps_existing(self, registry: SessionRegistry):
        """Test registering twice for one id keeps the first handle."""
        first = _handle("s-1")
        second = _handle("s-1")

        await registry.register(first)
        registered = await registry.register(second)

        assert registered is first
        assert await registry.acquire("s-1") is first
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_concurrent_register_single_winner(self, registry: SessionRegistry):
        """Test concurrent registrations for one id leave exactly one handle."""
        handles = [_handle("s-1") for _ in range(10)]

        results = await asyncio.gather(*(registry.register(h) for h in handles))

        winner = await registry.acquire("s-1")
        assert all(r is winner for r in results)
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_release(self, registry: SessionRegistry):
        """Test releasing removes and returns the handle."""
        handle = _handle("s-1")
        await registry.register(handle)

        released = await registry.release("s-1")

        assert released is handle
        assert await registry.acquire("s-1") is None
        assert "s-1" not in registry

    @pytest.mark.asyncio
    async def test_release_nonexistent(self, registry: SessionRegistry):
        """Test releasing an unknown id doesn't raise."""
        assert await registry.release("nonexistent") is None

    @pytest.mark.asyncio
    async def test_drain(self, registry: SessionRegistry):
        """Test drain empties the registry and returns every handle."""
        for session_id in ("s-1", "s-2", "s-3"):
            await registry.register(_handle(session_id))

        drained = await registry.drain()

        assert sorted(h.session_id for h in drained) == ["s-1", "s-2", "s-3"]
        assert len(registry) == 0
        assert await registry.session_ids() == []

    @pytest.mark.asyncio
    async def test_session_ids(self, registry: SessionRegistry):
        """Test listing the ids of live sessions."""
        await registry.register(_handle("s-1"))
        await registry.register(_handle("s-2"))

        assert sorted(await registry.session_ids()) == ["s-1", "s-2"]


class TestEngineHandle:
    """Tests for EngineHandle."""

    def test_not_capturing_by_default(self):
        """Test a new handle has no control channel or subscribers."""
        handle = _handle("s-1")

        assert handle.is_capturing is False
        assert handle.subscribers == set()
        assert handle.viewport_width == 1920
        assert handle.viewport_height == 1080
