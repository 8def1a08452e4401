"""Assessment model — one multi-turn health assessment.

Health data, answers, the pending question and recommendations are stored
AES-256-GCM encrypted (JSON documents). Progress is derived from the answer
count and stored denormalized for listing.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nutribot.models.base import Base, TimestampMixin
from nutribot.models.enums import AssessmentStatus


def compute_progress(answered: int, total: int) -> int:
    """100 * answered / total rounded half up, clamped to 0..100."""
    if total <= 0:
        return 0
    return max(0, min(100, (200 * answered + total) // (2 * total)))


class Assessment(TimestampMixin, Base):
    """A health assessment owned by a single data subject."""

    __tablename__ = "assessments"

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), default=AssessmentStatus.IN_PROGRESS.value, nullable=False, index=True
    )

    # Encrypted JSON documents
    raw_health_data: Mapped[str] = mapped_column(Text, nullable=False, comment="AES-256-GCM encrypted")
    anonymized_health_data: Mapped[str] = mapped_column(
        Text, nullable=False, comment="AES-256-GCM encrypted, derived once at creation"
    )
    answers: Mapped[str | None] = mapped_column(Text, comment="AES-256-GCM encrypted answer list")
    pending_question: Mapped[str | None] = mapped_column(Text, comment="AES-256-GCM encrypted")
    recommendations: Mapped[str | None] = mapped_column(Text, comment="AES-256-GCM encrypted")

    # Shape and progress
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    answered_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic concurrency counter, bumped by SQLAlchemy on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Assessment id={self.id} status={self.status} progress={self.progress}>"
