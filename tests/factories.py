"""Test doubles and builders shared across the suite."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from nutribot.errors import ProviderError
from nutribot.llm.providers import GenerationRequest, GenerationResult
from nutribot.models.enums import AnonymizationLevel, ConsentType
from nutribot.privacy.context import PrivacyContext
from nutribot.security.consent import ConsentManager

OWNER = "owner-1"
OTHER_OWNER = "owner-2"

PROFILE: dict[str, Any] = {
    "age": 34,
    "weight": 70.5,
    "height": 172,
    "gender": "female",
    "activityLevel": "moderately_active",
    "goals": ["perder peso"],
    "medicalConditions": [],
    "allergies": ["frutos secos"],
    "dietaryPreferences": ["mediterranea"],
}

ALL_CONSENTS = (
    ConsentType.HEALTH_DATA_PROCESSING,
    ConsentType.AI_ANALYSIS,
    ConsentType.PERSONALIZATION,
)


class ScriptedProvider:
    """Provider double. Returns numbered texts, or fails while `failing` is set."""

    def __init__(self, name: str = "local", *, failing: bool = False, model: str = "mistral:7b") -> None:
        self.name = name
        self.model = model
        self.failing = failing
        self.requests: list[GenerationRequest] = []
        self.closed = False

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self.failing:
            msg = f"{self.name} is down"
            raise ProviderError(msg, provider=self.name)
        return GenerationResult(
            text=f"{self.name} reply {len(self.requests)}",
            model=self.model,
            provider=self.name,
            processing_time_ms=5,
        )

    async def health(self) -> dict[str, Any]:
        return {"provider": self.name, "status": "healthy", "available": not self.failing}

    async def close(self) -> None:
        self.closed = True


def make_context(
    *,
    consent_valid: bool = True,
    level: AnonymizationLevel = AnonymizationLevel.MEDIUM,
    minimization: bool = True,
    anonymization: bool = True,
    include_health_data: bool = False,
) -> PrivacyContext:
    return PrivacyContext(
        timestamp=datetime.now(UTC),
        caller_ip="203.0.113.7",
        user_agent="pytest",
        consent_valid=consent_valid,
        data_minimization_enabled=minimization,
        anonymization_enabled=anonymization,
        anonymization_level=level,
        compliance_flags=frozenset({"gdpr", "lopdgdd"}),
        data_retention_days=730,
        include_health_data=include_health_data and consent_valid,
    )


async def grant(consents: ConsentManager, owner_id: str = OWNER, types=ALL_CONSENTS) -> None:
    for consent_type in types:
        await consents.record_consent(owner_id, consent_type, "nutrition assessment", True)
