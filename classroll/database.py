"""Database configuration, session management and the unit-of-work runner."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from classroll.config import settings

T = TypeVar("T")


def create_engine() -> AsyncEngine:
    """Create the async database engine."""
    # Use NullPool in development for easier debugging
    pool_class = NullPool if settings.is_development else None

    engine_kwargs = {
        "echo": settings.app_debug,
        "future": True,
    }

    if pool_class:
        engine_kwargs["poolclass"] = pool_class
    else:
        engine_kwargs["pool_size"] = settings.database_pool_size
        engine_kwargs["max_overflow"] = settings.database_max_overflow
        engine_kwargs["pool_pre_ping"] = True

    return create_async_engine(settings.async_database_url, **engine_kwargs)


# Global engine instance
engine = create_engine()

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session.

    Services commit their own units of work; anything left pending when the
    request ends is rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    timeout: float | None = None,
) -> T:
    """Run ``work`` as one atomic unit of work.

    Everything ``work`` does through ``db`` is committed together, or rolled
    back together if it raises, times out or the calling task is cancelled.
    Store operations used inside ``work`` must only flush, never commit.

    Args:
        db: Session the unit of work runs on
        work: Coroutine function receiving the session
        timeout: Optional deadline in seconds covering work and commit

    Returns:
        Whatever ``work`` returned
    """
    try:
        async with asyncio.timeout(timeout):
            result = await work(db)
            await db.commit()
    except BaseException:
        await db.rollback()
        raise
    return result


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
