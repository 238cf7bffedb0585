"""Kiosk FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from kiosk.config import Settings
from kiosk.db import create_engine, create_session_factory
from kiosk.db.models import Base
from kiosk.engine import EngineDriver, PatchrightDriver
from kiosk.routes import health_router, websocket_router
from kiosk.services import (
    CookieSynchronizer,
    DatabaseSessionStore,
    InputDispatcher,
    LifecycleController,
    MemorySessionStore,
    ScreencastRelay,
    SessionRegistry,
    SessionStore,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    driver: EngineDriver | None = None,
    store: SessionStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    *driver* and *store* default to the patchright driver and the store
    selected by *settings*.
    """
    settings = settings or Settings()

    # Initialize the session store
    engine: AsyncEngine | None = None
    if store is None and not settings.use_memory_store:
        try:
            engine = create_engine(
                settings.database_url,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                echo=settings.db_echo,
                statement_timeout=settings.db_statement_timeout,
                command_timeout=settings.db_command_timeout,
            )
            store = DatabaseSessionStore(create_session_factory(engine))
            logger.info(
                f"Database connection configured: {settings.database_url.split('@')[-1]}"
            )
        except Exception as e:
            logger.warning(
                f"Failed to configure database, keeping sessions in memory: {e}"
            )
    if store is None:
        store = MemorySessionStore()

    if driver is None:
        driver = PatchrightDriver(
            executable_path=settings.browser_executable,
            headless=settings.browser_headless,
            args=settings.browser_args,
        )

    # Initialize core services
    registry = SessionRegistry()
    cookie_sync = CookieSynchronizer(
        registry, store, interval=settings.cookie_sync_interval
    )
    relay = ScreencastRelay(
        registry,
        image_format=settings.screencast_format,
        quality=settings.screencast_quality,
        every_nth_frame=settings.screencast_every_nth_frame,
        send_timeout=settings.frame_send_timeout,
    )
    dispatcher = InputDispatcher(registry, cookie_sync)
    lifecycle = LifecycleController(
        registry=registry,
        store=store,
        driver=driver,
        cookie_sync=cookie_sync,
        relay=relay,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Kiosk starting up")

        if engine:
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                logger.info("Database tables created/verified")
            except Exception as e:
                logger.error(f"Database initialization error: {e}")

        if settings.restore_on_startup:
            try:
                restored = await lifecycle.restore_all()
                logger.info(f"Restored {len(restored)} browser session(s)")
            except Exception as e:
                logger.error(f"Failed to restore running sessions: {e}")

        yield

        await lifecycle.shutdown()
        await driver.close()

        if engine:
            await engine.dispose()
            logger.info("Database connection closed")

        logger.info("Kiosk shutting down")

    kiosk_app = FastAPI(
        title="Kiosk",
        description="Persistent headless-browser sessions with live screencast",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store services in app.state for dependency injection
    kiosk_app.state.settings = settings
    kiosk_app.state.store = store
    kiosk_app.state.registry = registry
    kiosk_app.state.cookie_sync = cookie_sync
    kiosk_app.state.relay = relay
    kiosk_app.state.dispatcher = dispatcher
    kiosk_app.state.lifecycle = lifecycle

    kiosk_app.include_router(websocket_router)
    kiosk_app.include_router(health_router)

    return kiosk_app
