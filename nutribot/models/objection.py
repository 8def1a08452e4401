"""ProcessingObjection model — GDPR Art. 21 right to object."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nutribot.models.base import Base, TimestampMixin
from nutribot.models.enums import ObjectionStatus


class ProcessingObjection(TimestampMixin, Base):
    """A recorded objection. Halting the processing is handled operationally."""

    __tablename__ = "processing_objections"

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    processing_type: Mapped[str] = mapped_column(String(100), nullable=False)
    categories: Mapped[list[str]] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), default=list)

    status: Mapped[str] = mapped_column(String(20), default=ObjectionStatus.RECEIVED.value, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ProcessingObjection owner={self.owner_id} type={self.processing_type}>"
