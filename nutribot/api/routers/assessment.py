"""Health assessment routes. All of them handle special-category data."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Response, status

from nutribot.api.deps import get_current_owner, get_privacy_context, get_services
from nutribot.container import Services
from nutribot.privacy.context import PrivacyContext
from nutribot.schemas.assessment import AnswerRequest, HealthProfile

router = APIRouter(prefix="/assessment", tags=["assessment"])

HEALTH_HEADERS = {
    "X-Health-Data-Protected": "true",
    "X-Data-Category": "health",
}


def _respond(response: Response, body: dict[str, Any], context: PrivacyContext) -> dict[str, Any]:
    response.headers.update(HEALTH_HEADERS)
    return {**body, "privacy": context.metadata()}


@router.post("", status_code=status.HTTP_201_CREATED)
async def start_assessment(
    profile: HealthProfile,
    response: Response,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Start an assessment and return the first question."""
    result = await services.assessments.start(owner_id, profile.to_document(), context)
    return _respond(response, result, context)


@router.post("/{assessment_id}/answer")
async def submit_answer(
    assessment_id: uuid.UUID,
    body: AnswerRequest,
    response: Response,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    result = await services.assessments.submit_answer(
        assessment_id,
        owner_id,
        body.question_id,
        body.answer,
        body.confidence,
        context,
    )
    return _respond(response, result, context)


@router.post("/{assessment_id}/next-question")
async def next_question(
    assessment_id: uuid.UUID,
    response: Response,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Generate (or return the pending) next question. Safe to retry."""
    result = await services.assessments.next_question(assessment_id, owner_id, context)
    return _respond(response, result, context)


@router.get("/{assessment_id}")
async def get_assessment(
    assessment_id: uuid.UUID,
    response: Response,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    result = await services.assessments.get(assessment_id, owner_id, context)
    return _respond(response, result, context)


@router.delete("/{assessment_id}")
async def delete_assessment(
    assessment_id: uuid.UUID,
    response: Response,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.assessments.delete(assessment_id, owner_id)
    return _respond(response, {"message": "Assessment deleted", "id": str(assessment_id)}, context)
