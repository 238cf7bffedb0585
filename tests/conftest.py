"""Pytest configuration and fixtures for kiosk tests."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import JSON, Column, MetaData, Table, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kiosk.config import Settings
from kiosk.engine import LaunchOptions
from kiosk.errors import NavigationTimeout
from kiosk.services import (
    CookieSynchronizer,
    InputDispatcher,
    LifecycleController,
    MemorySessionStore,
    ScreencastRelay,
    SessionRegistry,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


def _create_sqlite_compatible_metadata():
    """Create a new metadata with SQLite-compatible column types.

    This creates a copy of the models metadata with JSONB replaced by JSON
    and BigInteger primary keys replaced by Integer for SQLite compatibility.
    """
    # Import here to avoid circular imports
    from kiosk.db.models import Base
    from sqlalchemy import BigInteger, Integer

    new_metadata = MetaData()

    for table_name, table in Base.metadata.tables.items():
        columns = []
        for col in table.columns:
            col_type = col.type
            # Replace PostgreSQL-specific types
            if isinstance(col_type, JSONB):
                col_type = JSON()
            elif isinstance(col_type, BigInteger) and col.primary_key:
                # SQLite needs INTEGER for autoincrement PKs
                col_type = Integer()

            autoincrement_value = (
                "auto" if col.primary_key and isinstance(col_type, Integer) else False
            )

            columns.append(
                Column(
                    col.name,
                    col_type,
                    *[c.copy() for c in col.constraints if not c._type_bound],
                    primary_key=col.primary_key,
                    nullable=col.nullable,
                    default=col.default,
                    server_default=col.server_default,
                    autoincrement=autoincrement_value,
                )
            )

        Table(table_name, new_metadata, *columns)

    return new_metadata


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    sqlite_metadata = _create_sqlite_compatible_metadata()

    async with engine.begin() as conn:
        await conn.run_sync(sqlite_metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def session_factory(db_engine):
    """Create a session factory for testing."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── engine fakes ────────────────────────────────────────────────


class FakeChannel:
    """Stand-in for a CDP session: records handlers and sent commands."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.send = AsyncMock()
        self.detach = AsyncMock()

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    async def emit_frame(self, data: str = "ZnJhbWU=", ack_id: int = 1) -> None:
        await self.handlers["Page.screencastFrame"](
            {"data": data, "metadata": {"timestamp": ack_id}, "sessionId": ack_id}
        )

    def sent_methods(self) -> list[str]:
        return [c.args[0] for c in self.send.call_args_list]


def make_fake_page(
    width: int = 1920,
    height: int = 1080,
    failing_urls: set[str] | None = None,
) -> MagicMock:
    """Build an EnginePage double whose goto updates ``url``."""
    page = MagicMock()
    page.url = "about:blank"
    page.viewport = (width, height)
    page.is_closed = MagicMock(return_value=False)
    page.channels = []

    async def goto(url, timeout, wait_until="domcontentloaded"):
        if failing_urls and url in failing_urls:
            raise NavigationTimeout(f"goto timed out: {url}")
        page.url = url

    async def open_control_channel():
        channel = FakeChannel()
        page.channels.append(channel)
        return channel

    page.goto = AsyncMock(side_effect=goto)
    page.go_back = AsyncMock()
    page.go_forward = AsyncMock()
    page.reload = AsyncMock()
    page.screenshot = AsyncMock(return_value=PNG_BYTES)
    page.cookies = AsyncMock(return_value=[])
    page.add_cookies = AsyncMock()
    page.mouse_move = AsyncMock()
    page.mouse_down = AsyncMock()
    page.mouse_up = AsyncMock()
    page.click = AsyncMock()
    page.key_down = AsyncMock()
    page.key_up = AsyncMock()
    page.insert_text = AsyncMock()
    page.type_text = AsyncMock()
    page.press_key = AsyncMock()
    page.scroll = AsyncMock()
    page.upload_file = AsyncMock()
    page.open_control_channel = AsyncMock(side_effect=open_control_channel)
    page.close = AsyncMock()
    return page


class FakeDriver:
    """EngineDriver double that hands out fake pages."""

    def __init__(self) -> None:
        self.pages: list[MagicMock] = []
        self.launch_options: list[LaunchOptions] = []
        self.failing_urls: set[str] = set()
        self.launch_error: Exception | None = None
        self.close = AsyncMock()

    async def launch(self, options: LaunchOptions) -> MagicMock:
        self.launch_options.append(options)
        # Yield so concurrent starts get a chance to interleave
        await asyncio.sleep(0)
        if self.launch_error is not None:
            raise self.launch_error
        page = make_fake_page(
            options.viewport_width, options.viewport_height, self.failing_urls
        )
        self.pages.append(page)
        return page


class FakeViewer:
    """ViewerConnection double collecting the frames it receives."""

    def __init__(self, is_open: bool = True) -> None:
        self.is_open = is_open
        self.frames: list[dict[str, Any]] = []

    async def send_json(self, data: dict[str, Any]) -> None:
        self.frames.append(data)


class FailingViewer(FakeViewer):
    async def send_json(self, data: dict[str, Any]) -> None:
        raise ConnectionResetError("viewer went away")


# ── service fixtures ────────────────────────────────────────────


@pytest.fixture
def settings():
    """Settings for tests: in-memory store, no restore, tight timeouts."""
    return Settings(
        use_memory_store=True,
        browser_executable=None,
        restore_on_startup=False,
        frame_send_timeout=0.5,
    )


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def registry():
    """Create a fresh SessionRegistry instance."""
    return SessionRegistry()


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
async def cookie_sync(registry, store, settings):
    sync = CookieSynchronizer(registry, store, interval=settings.cookie_sync_interval)
    yield sync
    await sync.close()


@pytest.fixture
def relay(registry, settings):
    return ScreencastRelay(
        registry,
        image_format=settings.screencast_format,
        quality=settings.screencast_quality,
        every_nth_frame=settings.screencast_every_nth_frame,
        send_timeout=settings.frame_send_timeout,
    )


@pytest.fixture
def dispatcher(registry, cookie_sync):
    return InputDispatcher(registry, cookie_sync)


@pytest.fixture
async def lifecycle(registry, store, driver, cookie_sync, relay, settings):
    controller = LifecycleController(
        registry=registry,
        store=store,
        driver=driver,
        cookie_sync=cookie_sync,
        relay=relay,
        settings=settings,
    )
    yield controller
    await controller.shutdown()


@pytest.fixture
async def session(store):
    """A stopped session targeting example.com."""
    return await store.create_session(user_id="user-1", url="https://example.com")
