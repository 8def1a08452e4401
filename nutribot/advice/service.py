"""Advice handlers — personalized advice, meal plans, progress insights.

Each handler runs gate → minimize → anonymize → prompt → provider chain and
always returns a response once the gate passes (the rule-based responder is
the floor).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from nutribot.errors import ValidationError
from nutribot.events import EventBus
from nutribot.llm import prompts
from nutribot.llm.chain import ProviderChain
from nutribot.llm.providers import GenerationRequest, GenerationResult
from nutribot.models.enums import OperationCategory
from nutribot.privacy.context import PrivacyContext
from nutribot.privacy.gate import ConsentGate
from nutribot.privacy.pipeline import PrivacyPipeline
from nutribot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class AdviceService:
    def __init__(
        self,
        *,
        gate: ConsentGate,
        pipeline: PrivacyPipeline,
        chain: ProviderChain,
        bus: EventBus,
    ) -> None:
        self._gate = gate
        self._pipeline = pipeline
        self._chain = chain
        self._bus = bus

    async def get_personalized_advice(
        self,
        owner_id: str,
        query: str,
        user_context: dict[str, Any] | None,
        context: PrivacyContext,
    ) -> dict[str, Any]:
        if not query.strip():
            msg = "Query is required"
            raise ValidationError(msg)
        result = await self._run(
            owner_id,
            OperationCategory.PERSONALIZED_ADVICE,
            {"query": query, "context": user_context or {}},
            prompts.advice_request,
            EventType.ADVICE_GENERATED,
            context,
        )
        return self._response("advice", result, context)

    async def generate_meal_plan(
        self,
        owner_id: str,
        duration: str,
        preferences: dict[str, Any] | None,
        restrictions: list[str] | None,
        context: PrivacyContext,
    ) -> dict[str, Any]:
        if duration not in prompts.MEAL_PLAN_DAYS:
            msg = f"Invalid duration: {duration}"
            raise ValidationError(msg)
        result = await self._run(
            owner_id,
            OperationCategory.MEAL_PLAN,
            {"duration": duration, "preferences": preferences or {}, "restrictions": restrictions or []},
            prompts.meal_plan_request,
            EventType.MEAL_PLAN_GENERATED,
            context,
        )
        response = self._response("mealPlan", result, context)
        response["duration"] = duration
        return response

    async def track_progress(
        self,
        owner_id: str,
        metrics: dict[str, Any],
        date: datetime | None,
        context: PrivacyContext,
    ) -> dict[str, Any]:
        if not metrics:
            msg = "Metrics must be a non-empty object"
            raise ValidationError(msg)
        when = (date or context.timestamp).isoformat()
        result = await self._run(
            owner_id,
            OperationCategory.PROGRESS_TRACKING,
            {"metrics": metrics, "date": when},
            prompts.progress_request,
            EventType.PROGRESS_TRACKED,
            context,
        )
        response = self._response("insights", result, context)
        response["date"] = when
        return response

    async def _run(
        self,
        owner_id: str,
        category: OperationCategory,
        payload: dict[str, Any],
        build: Callable[[PrivacyContext, Mapping[str, Any]], GenerationRequest],
        event_type: EventType,
        context: PrivacyContext,
    ) -> GenerationResult:
        await self._gate.check(owner_id, category, context)
        prepared = await self._pipeline.prepare(payload, category, context, owner_id=owner_id)
        request = build(context, prepared)
        result = await self._chain.generate(request, owner_id=owner_id)

        await self._bus.emit(SystemEvent(
            event_type=event_type,
            owner_id=owner_id,
            actor_role="user",
            data={"category": category.value, "model": result.model, "provider": result.provider},
            source_module="advice.service",
        ))
        logger.info("%s generated: owner=%s model=%s", category.value, owner_id, result.model)
        return result

    @staticmethod
    def _response(key: str, result: GenerationResult, context: PrivacyContext) -> dict[str, Any]:
        return {
            key: result.text,
            "model": result.model,
            "privacyCompliant": context.data_minimization_enabled or context.anonymization_enabled,
            "processingTime": result.processing_time_ms,
        }
