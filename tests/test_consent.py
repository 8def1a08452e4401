"""Tests for ConsentManager — recording, activity, revocation."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from factories import OTHER_OWNER, OWNER
from nutribot.errors import NotFoundError, PersistenceError
from nutribot.events import EventBus
from nutribot.models.consent import Consent
from nutribot.models.enums import ConsentType
from nutribot.schemas.events import EventType
from nutribot.security.audit import AuditLogger
from nutribot.security.consent import ConsentManager, consent_to_dict
from nutribot.storage.ports import Repositories


@pytest.fixture
def manager(repos: Repositories, bus: EventBus) -> ConsentManager:
    bus.subscribe(AuditLogger(repos.audit).on_event)
    return ConsentManager(repos.consents, bus)


# ── record_consent ───────────────────────────────────────────────────


class TestRecordConsent:
    @pytest.mark.asyncio()
    async def test_grant_is_active(self, manager: ConsentManager) -> None:
        record = await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True)
        assert record.granted is True
        assert record.granted_at is not None
        assert await manager.active_types(OWNER) == {"ai_analysis"}

    @pytest.mark.asyncio()
    async def test_refusal_is_recorded_but_inactive(self, manager: ConsentManager) -> None:
        record = await manager.record_consent(OWNER, ConsentType.MARKETING, "newsletter", False)
        assert record.granted_at is None
        assert len(await manager.list_consents(OWNER)) == 1
        assert await manager.active_types(OWNER) == set()

    @pytest.mark.asyncio()
    async def test_expired_consent_is_inactive(self, manager: ConsentManager) -> None:
        past = datetime.now(UTC) - timedelta(days=1)
        await manager.record_consent(OWNER, ConsentType.ANALYTICS, "stats", True, expiry_date=past)
        assert await manager.active_types(OWNER) == set()

    @pytest.mark.asyncio()
    async def test_naive_expiry_is_read_as_utc(self, manager: ConsentManager) -> None:
        future = datetime(2999, 1, 1)
        past = datetime(2000, 1, 1)
        kept = await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True, expiry_date=future)
        await manager.record_consent(OWNER, ConsentType.ANALYTICS, "stats", True, expiry_date=past)

        assert kept.expiry_date == datetime(2999, 1, 1, tzinfo=UTC)
        assert await manager.active_types(OWNER) == {"ai_analysis"}
        assert consent_to_dict(kept)["isActive"] is True

    @pytest.mark.asyncio()
    async def test_emits_audit_event(self, manager: ConsentManager, repos: Repositories) -> None:
        await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True)
        entries = repos.audit.entries
        assert [e.event_type for e in entries] == [EventType.CONSENT_GRANTED.value]
        assert entries[0].owner_id == OWNER
        assert "análisis" not in str(entries[0].data)

    @pytest.mark.asyncio()
    async def test_owner_scoped(self, manager: ConsentManager) -> None:
        await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True)
        assert await manager.list_consents(OTHER_OWNER) == []


# ── revoke ───────────────────────────────────────────────────────────


class TestRevoke:
    @pytest.mark.asyncio()
    async def test_revoke_keeps_row(self, manager: ConsentManager) -> None:
        record = await manager.record_consent(OWNER, ConsentType.PERSONALIZATION, "consejos", True)
        revoked = await manager.revoke(OWNER, record.id, "ya no")
        assert revoked.revoked_at is not None
        assert revoked.revocation_reason == "ya no"
        assert len(await manager.list_consents(OWNER)) == 1
        assert await manager.active_types(OWNER) == set()

    @pytest.mark.asyncio()
    async def test_revoke_unknown_id(self, manager: ConsentManager) -> None:
        with pytest.raises(NotFoundError):
            await manager.revoke(OWNER, uuid.uuid4())

    @pytest.mark.asyncio()
    async def test_revoke_other_owners_consent(self, manager: ConsentManager) -> None:
        record = await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True)
        with pytest.raises(NotFoundError):
            await manager.revoke(OTHER_OWNER, record.id)

    @pytest.mark.asyncio()
    async def test_revoke_all(self, manager: ConsentManager) -> None:
        first = await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True)
        await manager.record_consent(OWNER, ConsentType.ANALYTICS, "stats", True)
        await manager.revoke(OWNER, first.id)
        revoked = await manager.revoke_all(OWNER)
        assert len(revoked) == 1
        assert all(c.revoked_at is not None for c in await manager.list_consents(OWNER))

    @pytest.mark.asyncio()
    async def test_consents_are_never_deleted(self, repos: Repositories) -> None:
        with pytest.raises(PersistenceError):
            await repos.consents.delete_by_owner(OWNER)


class TestConsentToDict:
    @pytest.mark.asyncio()
    async def test_projection(self, manager: ConsentManager) -> None:
        record = await manager.record_consent(OWNER, ConsentType.AI_ANALYSIS, "análisis", True)
        projected = consent_to_dict(record)
        assert projected["id"] == str(record.id)
        assert projected["type"] == "ai_analysis"
        assert projected["isActive"] is True
        assert projected["revokedAt"] is None

    def test_stored_naive_expiry_compares_against_aware_now(self) -> None:
        record = Consent(type="ai_analysis", purpose="análisis", granted=True, expiry_date=datetime(2999, 1, 1))
        assert record.is_active_at(datetime.now(UTC)) is True
        assert consent_to_dict(record)["isActive"] is True
