"""DataRestriction model — GDPR Art. 18 restriction of processing."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nutribot.models.base import Base, TimestampMixin
from nutribot.models.enums import RestrictionStatus


class DataRestriction(TimestampMixin, Base):
    """A time-boxed restriction of processing. Empty categories means everything."""

    __tablename__ = "data_restrictions"

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    categories: Mapped[list[str]] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), default=list)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=RestrictionStatus.ACTIVE.value, nullable=False)

    def effective_status(self, now: datetime | None = None) -> RestrictionStatus:
        """Restrictions expire on their own once end_date has passed."""
        now = now or datetime.now(UTC)
        if self.status == RestrictionStatus.EXPIRED.value or self.end_date <= now:
            return RestrictionStatus.EXPIRED
        return RestrictionStatus.ACTIVE

    def covers(self, category: str, now: datetime | None = None) -> bool:
        """True when this restriction is active and applies to the category."""
        if self.effective_status(now) is not RestrictionStatus.ACTIVE:
            return False
        return not self.categories or category in self.categories

    def __repr__(self) -> str:
        return f"<DataRestriction owner={self.owner_id} status={self.status}>"
