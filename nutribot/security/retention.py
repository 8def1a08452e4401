"""Data retention enforcement — periodic job for GDPR storage limitation.

Enforces two policies:
- Assessments: deleted once older than DATA_RETENTION_DAYS (default 730)
- Restrictions: flipped to `expired` once their end date has passed

Consent records, deletion requests and audit entries are NOT touched by this
job: they are the evidence that the other policies were applied.

Wired into the FastAPI lifespan as a background task (`retention_loop`).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from nutribot.config import PrivacySettings
from nutribot.events import EventBus
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.storage.ports import Repositories

logger = logging.getLogger(__name__)


async def enforce_data_retention(
    repositories: Repositories,
    privacy: PrivacySettings,
    bus: EventBus,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Run all retention policies. Returns a summary dict.

    Safe to call on every schedule tick — uses cutoff dates to find
    expired records. Idempotent: running twice is harmless.
    """
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=privacy.data_retention_days)
    summary: dict[str, int] = {
        "assessments_deleted": 0,
        "restrictions_expired": 0,
    }

    try:
        summary["assessments_deleted"] = await repositories.assessments.delete_created_before(cutoff)
        summary["restrictions_expired"] = await repositories.restrictions.expire_ended(now)
    except Exception:
        logger.exception("Data retention job failed")
        return summary

    await bus.emit(SystemEvent(
        event_type=EventType.SYSTEM_MAINTENANCE,
        data={"action": "data_retention", **summary},
        source_module="security.retention",
    ))

    logger.info(
        "Retention job complete: assessments=%d restrictions=%d (cutoff=%s)",
        summary["assessments_deleted"],
        summary["restrictions_expired"],
        cutoff.date(),
    )
    return summary


async def retention_loop(
    repositories: Repositories,
    privacy: PrivacySettings,
    bus: EventBus,
) -> None:
    """Run enforce_data_retention every RETENTION_INTERVAL_SECONDS until cancelled."""
    while True:
        await enforce_data_retention(repositories, privacy, bus)
        await asyncio.sleep(privacy.retention_interval_seconds)
