"""Pydantic schemas for the health assessment API.

Request bodies are camelCase on the wire and snake_case in Python.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Gender = Literal["male", "female", "other", "prefer_not_to_say"]
ActivityLevel = Literal["sedentary", "lightly_active", "moderately_active", "very_active", "extremely_active"]


class CamelModel(BaseModel):
    """Base for wire schemas: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class HealthProfile(CamelModel):
    """Health profile submitted when an assessment starts."""

    age: int = Field(ge=1, le=120)
    weight: float = Field(ge=20, le=300, description="kg")
    height: float = Field(ge=100, le=250, description="cm")
    gender: Gender
    activity_level: ActivityLevel
    goals: list[str]
    medical_conditions: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    dietary_preferences: list[str] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """The stored (and later anonymized) representation."""
        return self.model_dump(by_alias=True)


class AnswerRequest(CamelModel):
    question_id: str = Field(min_length=1, max_length=64)
    answer: str = Field(min_length=1, max_length=4000)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class Question(CamelModel):
    id: str
    text: str


class AnswerRecord(CamelModel):
    """One entry of the ordered answer history."""

    question_id: str
    answer: str
    confidence: float
    timestamp: str
