"""Advice, meal-plan and progress routes."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response

from nutribot.api.deps import get_current_owner, get_privacy_context, get_services
from nutribot.api.routers.assessment import HEALTH_HEADERS
from nutribot.container import Services
from nutribot.privacy.context import PrivacyContext
from nutribot.schemas.advice import AdviceRequest, MealPlanRequest, ProgressRequest

router = APIRouter(tags=["advice"])


@router.post("/advice")
async def personalized_advice(
    body: AdviceRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    result = await services.advice.get_personalized_advice(owner_id, body.query, body.context, context)
    return {**result, "privacy": context.metadata()}


@router.post("/meal-plan")
async def meal_plan(
    body: MealPlanRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    result = await services.advice.generate_meal_plan(
        owner_id,
        body.duration,
        body.preferences,
        body.restrictions,
        context,
    )
    return {**result, "privacy": context.metadata()}


@router.post("/track-progress")
async def track_progress(
    body: ProgressRequest,
    response: Response,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Progress metrics are health data."""
    result = await services.advice.track_progress(owner_id, body.metrics, body.date, context)
    response.headers.update(HEALTH_HEADERS)
    return {**result, "privacy": context.metadata()}
