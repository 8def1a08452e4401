"""SQLAlchemy ORM models for NutriBot.

Import all models here so Base.metadata.create_all() discovers them.
"""

from __future__ import annotations

from nutribot.models.assessment import Assessment, compute_progress
from nutribot.models.audit import AuditLog
from nutribot.models.base import Base
from nutribot.models.consent import Consent
from nutribot.models.deletion import DataDeletionRequest
from nutribot.models.enums import (
    AnonymizationLevel,
    AssessmentStatus,
    ConsentType,
    DataCategory,
    DeletionRequestStatus,
    ExportFormat,
    ObjectionStatus,
    OperationCategory,
    RestrictionStatus,
)
from nutribot.models.objection import ProcessingObjection
from nutribot.models.restriction import DataRestriction

__all__ = [
    # Base
    "Base",
    # Models
    "Assessment",
    "AuditLog",
    "Consent",
    "DataDeletionRequest",
    "DataRestriction",
    "ProcessingObjection",
    # Helpers
    "compute_progress",
    # Enums
    "AnonymizationLevel",
    "AssessmentStatus",
    "ConsentType",
    "DataCategory",
    "DeletionRequestStatus",
    "ExportFormat",
    "ObjectionStatus",
    "OperationCategory",
    "RestrictionStatus",
]
