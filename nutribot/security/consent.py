"""Consent management — records, checks, revokes, and exports GDPR consent.

Every grant creates a Consent row; revocation mutates that row (revoked_at,
reason) and never deletes it. The consent store is the authoritative source
for the gate's required-consent check.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from nutribot.errors import NotFoundError
from nutribot.events import EventBus
from nutribot.models.base import as_utc
from nutribot.models.consent import Consent
from nutribot.models.enums import ConsentType
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.storage.ports import ConsentRepository

logger = logging.getLogger(__name__)


def consent_to_dict(consent: Consent, now: datetime | None = None) -> dict[str, Any]:
    """Public projection used by GET /consent and the data export."""
    now = now or datetime.now(UTC)
    return {
        "id": str(consent.id),
        "type": consent.type,
        "purpose": consent.purpose,
        "granted": consent.granted,
        "grantedAt": consent.granted_at.isoformat() if consent.granted_at else None,
        "revokedAt": consent.revoked_at.isoformat() if consent.revoked_at else None,
        "revocationReason": consent.revocation_reason,
        "expiryDate": consent.expiry_date.isoformat() if consent.expiry_date else None,
        "isActive": consent.is_active_at(now),
    }


class ConsentManager:
    """Consent operations over the consent store."""

    def __init__(self, repository: ConsentRepository, bus: EventBus) -> None:
        self._repository = repository
        self._bus = bus

    async def record_consent(
        self,
        owner_id: str,
        consent_type: ConsentType,
        purpose: str,
        granted: bool,
        expiry_date: datetime | None = None,
    ) -> Consent:
        """Create a Consent row. A refusal is recorded too (granted=False)."""
        now = datetime.now(UTC)
        record = Consent(
            id=uuid.uuid4(),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            type=consent_type.value,
            purpose=purpose,
            granted=granted,
            granted_at=now if granted else None,
            revoked_at=None,
            revocation_reason=None,
            expiry_date=as_utc(expiry_date) if expiry_date is not None else None,
        )
        await self._repository.save(record)

        event_type = EventType.CONSENT_GRANTED if granted else EventType.CONSENT_REVOKED
        await self._bus.emit(SystemEvent(
            event_type=event_type,
            owner_id=owner_id,
            actor_role="user",
            data={"consent_id": str(record.id), "consent_type": consent_type.value, "granted": granted},
            source_module="security.consent",
        ))

        logger.info(
            "Consent %s: owner=%s type=%s",
            "granted" if granted else "refused",
            owner_id,
            consent_type.value,
        )
        return record

    async def list_consents(self, owner_id: str) -> list[Consent]:
        return await self._repository.list_by_owner(owner_id)

    async def active_types(self, owner_id: str, now: datetime | None = None) -> set[str]:
        """Consent types currently active for the owner."""
        now = now or datetime.now(UTC)
        return {c.type for c in await self._repository.list_by_owner(owner_id) if c.is_active_at(now)}

    async def revoke(self, owner_id: str, consent_id: uuid.UUID, reason: str | None = None) -> Consent:
        """Revoke one consent. Unknown ids or other owners' consents are NotFound."""
        for consent in await self._repository.list_by_owner(owner_id):
            if consent.id == consent_id:
                break
        else:
            msg = "Consent not found"
            raise NotFoundError(msg)

        if consent.revoked_at is None:
            now = datetime.now(UTC)
            consent.revoked_at = now
            consent.updated_at = now
            consent.revocation_reason = reason
            await self._repository.save(consent)

            await self._bus.emit(SystemEvent(
                event_type=EventType.CONSENT_REVOKED,
                owner_id=owner_id,
                actor_role="user",
                data={"consent_id": str(consent.id), "consent_type": consent.type},
                source_module="security.consent",
            ))
            logger.info("Consent revoked: owner=%s type=%s", owner_id, consent.type)
        return consent

    async def revoke_all(self, owner_id: str, reason: str = "erasure") -> list[Consent]:
        """Revoke every not-yet-revoked consent. Rows stay as audit trail."""
        now = datetime.now(UTC)
        revoked: list[Consent] = []
        for consent in await self._repository.list_by_owner(owner_id):
            if consent.revoked_at is not None:
                continue
            consent.revoked_at = now
            consent.updated_at = now
            consent.revocation_reason = reason
            await self._repository.save(consent)
            revoked.append(consent)

        if revoked:
            await self._bus.emit(SystemEvent(
                event_type=EventType.CONSENT_REVOKED,
                owner_id=owner_id,
                actor_role="system",
                data={"count": len(revoked), "reason": "erasure" if reason == "erasure" else "bulk"},
                source_module="security.consent",
            ))
        return revoked
