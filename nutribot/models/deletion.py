"""DataDeletionRequest model — GDPR right-to-erasure workflow.

Kept after the erasure completes: it is the record that the erasure happened.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nutribot.models.base import Base, TimestampMixin
from nutribot.models.enums import DeletionRequestStatus


class DataDeletionRequest(TimestampMixin, Base):
    """A GDPR data deletion (right to erasure) request."""

    __tablename__ = "data_deletion_requests"

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    categories: Mapped[list[str]] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), default=list)

    # Status tracking
    status: Mapped[str] = mapped_column(
        String(20), default=DeletionRequestStatus.PENDING.value, nullable=False
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<DataDeletionRequest owner={self.owner_id} status={self.status}>"
