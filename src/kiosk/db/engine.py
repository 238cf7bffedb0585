"""Database engine and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_engine(
    database_url: str,
    pool_size: int = 20,
    max_overflow: int = 30,
    echo: bool = False,
    statement_timeout: int = 30000,
    command_timeout: int = 30,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the session store.

    Pool sizing and asyncpg timeouts only apply to PostgreSQL URLs; other
    backends (e.g. ``sqlite+aiosqlite`` for local runs) get a plain engine.

    Args:
        database_url: Connection URL (postgresql+asyncpg://... in production)
        pool_size: Number of connections to keep in the pool
        max_overflow: Maximum overflow connections beyond pool_size
        echo: Whether to log SQL statements
        statement_timeout: PostgreSQL statement timeout in milliseconds
        command_timeout: asyncpg command timeout in seconds

    Returns:
        Configured AsyncEngine instance
    """
    url = make_url(database_url)
    if url.get_backend_name() != "postgresql":
        return create_async_engine(database_url, echo=echo)

    connect_args: dict[str, Any] = {}
    if url.get_driver_name() == "asyncpg":
        connect_args = {
            "command_timeout": command_timeout,
            "server_settings": {
                "statement_timeout": str(statement_timeout),
            },
        }

    return create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,  # Verify connections on checkout
        pool_timeout=30,
        echo=echo,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session that commits on success and rolls back on error.

    Example:
        async with get_session(session_factory) as session:
            await CookieRepository(session).clear(session_id)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
