"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class AssessmentStatus(str, Enum):
    """Lifecycle of a health assessment. Moves forward only."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RESTRICTED = "restricted"
    DELETED = "deleted"  # terminal, the row is purged


class AnonymizationLevel(str, Enum):
    """Strength of identifier removal before data leaves the trust boundary."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OperationCategory(str, Enum):
    """Processing operations that reach an inference provider."""

    HEALTH_ASSESSMENT = "health_assessment"
    PERSONALIZED_ADVICE = "personalized_advice"
    MEAL_PLAN = "meal_plan"
    PROGRESS_TRACKING = "progress_tracking"


class ConsentType(str, Enum):
    """Purpose-bound consent types a data subject can grant."""

    HEALTH_DATA_PROCESSING = "health_data_processing"
    AI_ANALYSIS = "ai_analysis"
    PERSONALIZATION = "personalization"
    HEALTH_DATA_SHARING = "health_data_sharing"
    NUTRITIONIST_ACCESS = "nutritionist_access"
    ANALYTICS = "analytics"
    DATA_PORTABILITY = "data_portability"
    MARKETING = "marketing"


class RestrictionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class ObjectionStatus(str, Enum):
    """Objections are recorded only; acting on them is an operational follow-up."""

    RECEIVED = "received"


class DeletionRequestStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DataCategory(str, Enum):
    """Personal-data categories addressable by the data-rights workflow."""

    ASSESSMENTS = "assessments"
    CONSENTS = "consents"
    RESTRICTIONS = "restrictions"
    OBJECTIONS = "objections"


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    XML = "xml"
