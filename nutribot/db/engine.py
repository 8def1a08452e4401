"""Async database engine, session factory, and lifespan management.

Uses SQLAlchemy 2.0 async with asyncpg driver for PostgreSQL.
Built from the immutable Settings at startup and owned by the application.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from nutribot.config import Settings

# ── Async PostgreSQL engine ──────────────────────────────────────────


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the connection pool. Nothing connects until first use."""
    return create_async_engine(
        settings.db.database_url,
        echo=settings.log_level == "DEBUG",
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


# ── Session factory ──────────────────────────────────────────────────


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Lifespan helpers ─────────────────────────────────────────────────


async def init_db(engine: AsyncEngine, settings: Settings) -> None:
    """Verify connectivity and, outside production, create missing tables."""
    async with engine.begin() as conn:
        # Import here to ensure all models are registered with Base.metadata
        from nutribot.models import Base

        if not settings.is_production:
            await conn.run_sync(Base.metadata.create_all)


@contextlib.asynccontextmanager
async def db_lifespan(engine: AsyncEngine, settings: Settings) -> AsyncGenerator[None, None]:
    """Context manager for database lifecycle.

    Usage in FastAPI lifespan:
        async with db_lifespan(engine, settings):
            yield
    """
    await init_db(engine, settings)
    try:
        yield
    finally:
        await engine.dispose()
