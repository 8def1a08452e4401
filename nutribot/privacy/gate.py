"""Consent gate — decides whether an operation may touch a provider.

Runs strictly before minimization, anonymization or any provider call.
Checks, in order:

1. health categories need a valid consent token (HEALTH_CONSENT_REQUIRED)
2. every required consent type is active in the consent store (MISSING_CONSENTS)
3. no active restriction covers the category (PROCESSING_RESTRICTED)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from nutribot.errors import (
    ConsentError,
    HealthConsentRequiredError,
    MissingConsentsError,
    ProcessingRestrictedError,
)
from nutribot.events import EventBus
from nutribot.models.enums import ConsentType, DataCategory, OperationCategory
from nutribot.privacy.context import PrivacyContext
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.security.consent import ConsentManager
from nutribot.storage.ports import RestrictionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsentRequirement:
    health_category: bool
    required: tuple[ConsentType, ...]


CONSENT_REQUIREMENTS: dict[OperationCategory, ConsentRequirement] = {
    OperationCategory.HEALTH_ASSESSMENT: ConsentRequirement(
        health_category=True,
        required=(ConsentType.HEALTH_DATA_PROCESSING, ConsentType.AI_ANALYSIS),
    ),
    OperationCategory.PERSONALIZED_ADVICE: ConsentRequirement(
        health_category=False,
        required=(ConsentType.HEALTH_DATA_PROCESSING, ConsentType.AI_ANALYSIS, ConsentType.PERSONALIZATION),
    ),
    OperationCategory.MEAL_PLAN: ConsentRequirement(
        health_category=False,
        required=(ConsentType.AI_ANALYSIS,),
    ),
    OperationCategory.PROGRESS_TRACKING: ConsentRequirement(
        health_category=True,
        required=(ConsentType.HEALTH_DATA_PROCESSING, ConsentType.AI_ANALYSIS),
    ),
}

# Restricting the stored assessments also blocks the assessment workflow
_RESTRICTION_ALIASES: dict[OperationCategory, tuple[str, ...]] = {
    OperationCategory.HEALTH_ASSESSMENT: (DataCategory.ASSESSMENTS.value,),
}


class ConsentGate:
    """Owner-scoped authorization of processing operations."""

    def __init__(
        self,
        consents: ConsentManager,
        restrictions: RestrictionRepository,
        bus: EventBus,
    ) -> None:
        self._consents = consents
        self._restrictions = restrictions
        self._bus = bus

    async def check(self, owner_id: str, category: OperationCategory, context: PrivacyContext) -> None:
        """Raise a ConsentError subclass if the operation may not proceed."""
        try:
            await self._check(owner_id, category, context)
        except ConsentError as exc:
            await self._bus.emit(SystemEvent(
                event_type=EventType.PRIVACY_GATE_REJECTED,
                owner_id=owner_id,
                actor_role="user",
                data={"category": category.value, "code": exc.code},
                source_module="privacy.gate",
            ))
            logger.info("Gate rejected %s for owner=%s: %s", category.value, owner_id, exc.code)
            raise

    async def _check(self, owner_id: str, category: OperationCategory, context: PrivacyContext) -> None:
        requirement = CONSENT_REQUIREMENTS[category]

        if requirement.health_category and not context.consent_valid:
            raise HealthConsentRequiredError()

        now = datetime.now(UTC)
        active = await self._consents.active_types(owner_id, now)
        missing = [c.value for c in requirement.required if c.value not in active]
        if missing:
            raise MissingConsentsError(missing)

        names = (category.value, *_RESTRICTION_ALIASES.get(category, ()))
        for restriction in await self._restrictions.list_by_owner(owner_id):
            if any(restriction.covers(name, now) for name in names):
                raise ProcessingRestrictedError(category.value)
