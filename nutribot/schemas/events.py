"""SystemEvent schema — the event type that flows through the whole service.

Every state change emits a SystemEvent. Subscribers (the audit logger) consume
them asynchronously. Event data never carries health data or free text, only
identifiers, counters, and enum values.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Assessment lifecycle
    ASSESSMENT_STARTED = "assessment.started"
    ASSESSMENT_ANSWERED = "assessment.answered"
    ASSESSMENT_STATE_CHANGED = "assessment.state_changed"
    ASSESSMENT_COMPLETED = "assessment.completed"
    ASSESSMENT_DELETED = "assessment.deleted"

    # Advice
    ADVICE_GENERATED = "advice.generated"
    MEAL_PLAN_GENERATED = "advice.meal_plan"
    PROGRESS_TRACKED = "advice.progress"

    # LLM
    LLM_REQUEST = "llm.request"
    LLM_RESPONSE = "llm.response"
    LLM_ERROR = "llm.error"
    LLM_FALLBACK = "llm.fallback"

    # Privacy gate
    PRIVACY_GATE_REJECTED = "privacy.gate_rejected"
    ANONYMIZATION_FAILED = "privacy.anonymization_failed"

    # Consent & GDPR
    CONSENT_GRANTED = "consent.granted"
    CONSENT_REVOKED = "consent.revoked"
    DATA_ACCESSED = "gdpr.data_accessed"
    DATA_EXPORTED = "gdpr.data_exported"
    DATA_RECTIFIED = "gdpr.data_rectified"
    PROCESSING_RESTRICTED = "gdpr.processing_restricted"
    PROCESSING_OBJECTED = "gdpr.processing_objected"
    DELETION_REQUESTED = "gdpr.deletion_requested"
    DELETION_COMPLETED = "gdpr.deletion_completed"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"
    SYSTEM_MAINTENANCE = "system.maintenance"


class SystemEvent(BaseModel):
    """Core event that flows through the event bus.

    Immutable once created. Consumed by the audit logger, which writes it to
    the audit_log table.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Context (optional)
    assessment_id: uuid.UUID | None = None
    owner_id: str | None = None
    actor_role: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
