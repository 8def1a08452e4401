"""Consent model — GDPR consent tracking.

A row is created on grant and mutated only on revocation. Rows are never
hard-deleted: they are the audit trail that outlives assessments and erasure.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from nutribot.models.base import Base, TimestampMixin, as_utc


class Consent(TimestampMixin, Base):
    """A purpose-bound consent granted (or refused) by a data subject."""

    __tablename__ = "consents"

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    type: Mapped[str] = mapped_column(String(50), nullable=False, comment="ConsentType enum value")
    purpose: Mapped[str] = mapped_column(String(500), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    granted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revocation_reason: Mapped[str | None] = mapped_column(String(500))
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def is_active_at(self, now: datetime) -> bool:
        """granted, not revoked, and not past its expiry date."""
        if not self.granted or self.revoked_at is not None:
            return False
        return self.expiry_date is None or as_utc(self.expiry_date) > as_utc(now)

    @property
    def is_active(self) -> bool:
        return self.is_active_at(datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<Consent type={self.type} granted={self.granted} revoked={self.revoked_at is not None}>"
