"""FastAPI application entry point — wires everything together.

Usage:
    python -m nutribot.main

`create_app()` builds the production graph inside the lifespan (PostgreSQL
repositories, Redis rate limiter, retention task). Passing a prebuilt
`Services` skips that wiring, which is how the test suite runs the app on
in-memory repositories.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import redis.asyncio as aioredis
import uvicorn
from fastapi import FastAPI

from nutribot import __version__
from nutribot.api.errors import register_exception_handlers
from nutribot.api.middleware import register_middleware
from nutribot.api.routers import advice, assessment, health, privacy
from nutribot.config import Settings, load_settings
from nutribot.container import Services, build_services
from nutribot.db.engine import build_engine, build_session_factory, db_lifespan
from nutribot.logging_config import configure_logging
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.security.rate_limiter import RateLimiter
from nutribot.security.retention import retention_loop
from nutribot.storage.sql import build_sql_repositories

logger = logging.getLogger(__name__)


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def _serve(services: Services) -> AsyncGenerator[None, None]:
    """Start the event bus and background jobs around a built Services graph."""
    settings = services.settings

    await services.bus.start()
    logger.info("Event system started")

    await services.bus.emit(SystemEvent(
        event_type=EventType.SYSTEM_STARTUP,
        data={"environment": settings.environment, "version": __version__},
        source_module="main",
    ))

    retention_task = asyncio.create_task(
        retention_loop(services.repositories, settings.privacy, services.bus)
    )
    logger.info("Retention job scheduled every %ds", settings.privacy.retention_interval_seconds)

    try:
        yield
    finally:
        logger.info("Shutting down NutriBot...")

        retention_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await retention_task

        await services.chain.close()
        logger.info("LLM providers closed")

        if services.rate_limiter is not None:
            await services.rate_limiter.close()

        await services.bus.emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
        await services.bus.stop()
        logger.info("Event system stopped")


def _lifespan(
    settings: Settings,
    prebuilt: Services | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application startup and shutdown lifecycle."""
        logger.info("Starting NutriBot (env=%s)", settings.environment)

        if prebuilt is not None:
            app.state.services = prebuilt
            async with _serve(prebuilt):
                yield
            return

        # 1. Database
        engine = build_engine(settings)
        async with db_lifespan(engine, settings):
            logger.info("Database initialized")

            # 2. Rate limiter (only if Redis configured)
            rate_limiter = None
            if settings.db.redis_url:
                rate_limiter = RateLimiter(aioredis.from_url(settings.db.redis_url))
                logger.info("Rate limiter enabled")
            else:
                logger.warning("REDIS_URL not set — rate limiting disabled")

            # 3. Services
            services = build_services(
                settings,
                build_sql_repositories(build_session_factory(engine)),
                rate_limiter=rate_limiter,
            )
            app.state.services = services

            async with _serve(services):
                yield

        logger.info("NutriBot shutdown complete")

    return lifespan


# ── FastAPI app ──────────────────────────────────────────────────────


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or (services.settings if services is not None else load_settings())
    configure_logging(settings)

    app = FastAPI(
        title="NutriBot API",
        description="Privacy-first AI nutrition assessments and advice",
        version=__version__,
        lifespan=_lifespan(settings, services),
    )
    if services is not None:
        app.state.services = services

    register_middleware(app)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(assessment.router)
    app.include_router(advice.router)
    app.include_router(privacy.router)
    return app


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    _settings = load_settings()
    uvicorn.run(
        create_app(_settings),
        host="0.0.0.0",
        port=8000,
        log_level=_settings.log_level.lower(),
    )
