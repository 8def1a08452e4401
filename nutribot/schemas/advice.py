"""Pydantic schemas for advice, meal plan, and progress requests."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from nutribot.schemas.assessment import CamelModel

MealPlanDuration = Literal["1_day", "3_days", "7_days", "14_days", "30_days"]


class AdviceRequest(CamelModel):
    query: str = Field(min_length=1, max_length=2000)
    context: dict[str, Any] | None = None


class MealPlanRequest(CamelModel):
    duration: MealPlanDuration
    preferences: dict[str, Any] | None = None
    restrictions: list[str] = Field(default_factory=list)


class ProgressRequest(CamelModel):
    metrics: dict[str, Any]
    date: datetime | None = None
