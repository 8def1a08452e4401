"""Liveness and provider health. No authentication."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from nutribot import __version__
from nutribot.api.deps import get_services
from nutribot.container import Services

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "environment": services.settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/llm")
async def llm_health(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Status of every provider in chain order, rule-based floor last."""
    providers = await services.chain.health()
    configured = providers[: len(services.chain.providers)]
    return {
        "status": "ok" if any(p.get("available") for p in configured) else "degraded",
        "providers": providers,
    }
