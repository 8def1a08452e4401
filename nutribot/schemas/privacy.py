"""Pydantic schemas for consent management and data-subject rights."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from nutribot.models.base import as_utc
from nutribot.models.enums import ConsentType, DataCategory, ExportFormat, OperationCategory
from nutribot.schemas.assessment import CamelModel

# Restrictions may name an operation or the stored assessments as a whole
RESTRICTABLE_CATEGORIES: frozenset[str] = frozenset(
    {c.value for c in OperationCategory} | {DataCategory.ASSESSMENTS.value}
)


class ConsentItem(CamelModel):
    type: ConsentType
    granted: bool
    purpose: str = Field(min_length=1, max_length=500)
    expiry_date: datetime | None = None

    @field_validator("expiry_date")
    @classmethod
    def validate_expiry_date(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None


class ConsentRequest(CamelModel):
    consents: list[ConsentItem] = Field(min_length=1)


class RevokeConsentRequest(CamelModel):
    consent_id: uuid.UUID
    reason: str | None = Field(default=None, max_length=500)


class ExportRequest(CamelModel):
    format: ExportFormat
    categories: list[DataCategory] | None = None


class RectifyRequest(CamelModel):
    field: str = Field(min_length=1)
    value: Any
    reason: str | None = Field(default=None, max_length=1000)
    assessment_id: uuid.UUID | None = None

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: Any) -> Any:
        if v is None or v == "" or v == []:
            msg = "New value is required"
            raise ValueError(msg)
        return v


class RestrictRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=1000)
    categories: list[str] = Field(default_factory=list)
    duration: int = Field(default=30, ge=1, le=365, description="days")

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - RESTRICTABLE_CATEGORIES)
        if unknown:
            msg = f"Unknown restriction categories: {unknown}"
            raise ValueError(msg)
        return v


class DeleteRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=1000)
    categories: list[DataCategory] | None = None


class ObjectionRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=1000)
    processing_type: str = Field(min_length=1, max_length=100)
    categories: list[str] = Field(default_factory=list)
