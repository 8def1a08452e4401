"""Data-subject rights — access, export, rectify, restrict, erase, object.

Every operation is owner-scoped and audited through the event bus. Event
payloads carry identifiers and field names only, never values.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import pydantic
from pydantic.alias_generators import to_camel

from nutribot.assessment.engine import AssessmentService
from nutribot.assessment.fsm import AssessmentFSM
from nutribot.assessment.locks import KeyedLock
from nutribot.errors import NotFoundError, ValidationError
from nutribot.events import EventBus
from nutribot.models.assessment import Assessment
from nutribot.models.enums import DataCategory, ExportFormat, ObjectionStatus, RestrictionStatus
from nutribot.models.objection import ProcessingObjection
from nutribot.models.restriction import DataRestriction
from nutribot.schemas.assessment import HealthProfile
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.security.consent import ConsentManager, consent_to_dict
from nutribot.security.data_export import DataExport, render_export
from nutribot.security.encryption import FieldEncryptor
from nutribot.security.erasure import ErasureProcessor, ErasureResult
from nutribot.storage.ports import Repositories

logger = logging.getLogger(__name__)

# Restricting any of these moves the owner's assessments to `restricted`
_ASSESSMENT_RESTRICTION_CATEGORIES = frozenset({"assessments", "health_assessment"})

# Wire name (camelCase) for every rectifiable health-profile field
RECTIFIABLE_FIELDS: dict[str, str] = {
    name: to_camel(name) for name in HealthProfile.model_fields
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def restriction_to_dict(restriction: DataRestriction, now: datetime | None = None) -> dict[str, Any]:
    return {
        "id": str(restriction.id),
        "reason": restriction.reason,
        "categories": list(restriction.categories or []),
        "startDate": _iso(restriction.start_date),
        "endDate": _iso(restriction.end_date),
        "status": restriction.effective_status(now).value,
    }


def objection_to_dict(objection: ProcessingObjection) -> dict[str, Any]:
    return {
        "id": str(objection.id),
        "reason": objection.reason,
        "processingType": objection.processing_type,
        "categories": list(objection.categories or []),
        "status": objection.status,
        "submittedAt": _iso(objection.submitted_at),
    }


class DataRightsService:
    def __init__(
        self,
        *,
        repositories: Repositories,
        consents: ConsentManager,
        assessments: AssessmentService,
        erasure: ErasureProcessor,
        encryptor: FieldEncryptor,
        bus: EventBus,
        locks: KeyedLock,
    ) -> None:
        self._repos = repositories
        self._consents = consents
        self._assessments = assessments
        self._erasure = erasure
        self._encryptor = encryptor
        self._bus = bus
        self._locks = locks

    # ── Access & portability ─────────────────────────────────────────

    async def get_user_data(
        self,
        owner_id: str,
        categories: Iterable[DataCategory] | None = None,
    ) -> dict[str, Any]:
        """Decrypted aggregate of everything held about the owner."""
        selected = frozenset(categories or ()) or frozenset(DataCategory)
        now = datetime.now(UTC)
        data: dict[str, Any] = {}

        if DataCategory.ASSESSMENTS in selected:
            data["assessments"] = [
                {
                    **self._assessments.project(a),
                    "healthData": self._encryptor.decrypt_json(a.raw_health_data, default={}),
                }
                for a in await self._repos.assessments.list_by_owner(owner_id)
            ]
        if DataCategory.CONSENTS in selected:
            data["consents"] = [consent_to_dict(c, now) for c in await self._consents.list_consents(owner_id)]
        if DataCategory.RESTRICTIONS in selected:
            data["restrictions"] = [
                restriction_to_dict(r, now) for r in await self._repos.restrictions.list_by_owner(owner_id)
            ]
        if DataCategory.OBJECTIONS in selected:
            data["objections"] = [
                objection_to_dict(o) for o in await self._repos.objections.list_by_owner(owner_id)
            ]

        await self._bus.emit(SystemEvent(
            event_type=EventType.DATA_ACCESSED,
            owner_id=owner_id,
            actor_role="user",
            data={"categories": sorted(c.value for c in selected)},
            source_module="security.data_rights",
        ))
        return data

    async def export_user_data(
        self,
        owner_id: str,
        fmt: ExportFormat,
        categories: Iterable[DataCategory] | None = None,
    ) -> DataExport:
        data = await self.get_user_data(owner_id, categories)
        export = render_export(data, fmt)

        await self._bus.emit(SystemEvent(
            event_type=EventType.DATA_EXPORTED,
            owner_id=owner_id,
            actor_role="user",
            data={"format": ExportFormat(fmt).value, "categories": sorted(data)},
            source_module="security.data_rights",
        ))
        logger.info("Data exported: owner=%s format=%s", owner_id, ExportFormat(fmt).value)
        return export

    # ── Rectification ────────────────────────────────────────────────

    async def rectify_field(
        self,
        owner_id: str,
        field: str,
        value: Any,
        reason: str | None = None,
        assessment_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        """Validated single-field update of a health profile.

        Targets the given assessment, or the most recent one. The anonymized
        copy derived at creation is left as it was.
        """
        wire_name = self._resolve_field(field)
        assessment = await self._target_assessment(owner_id, assessment_id)

        async with self._locks(assessment.id):
            current = await self._repos.assessments.find_by_id_and_owner(assessment.id, owner_id)
            if current is None:
                msg = "Assessment not found"
                raise NotFoundError(msg)

            raw: dict[str, Any] = self._encryptor.decrypt_json(current.raw_health_data, default={})
            old_value = raw.get(wire_name)
            try:
                profile = HealthProfile.model_validate({**raw, wire_name: value})
            except pydantic.ValidationError as exc:
                details = [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ]
                msg = f"Invalid value for {wire_name}"
                raise ValidationError(msg, details=details) from exc

            document = profile.to_document()
            new_value = document[wire_name]
            now = datetime.now(UTC)
            current.raw_health_data = self._encryptor.encrypt_json(document)
            current.updated_at = now
            await self._repos.assessments.save(current)

        await self._bus.emit(SystemEvent(
            event_type=EventType.DATA_RECTIFIED,
            assessment_id=current.id,
            owner_id=owner_id,
            actor_role="user",
            data={"field": wire_name, "has_reason": reason is not None},
            source_module="security.data_rights",
        ))
        logger.info("Field rectified: owner=%s assessment=%s field=%s", owner_id, current.id, wire_name)

        return {
            "field": wire_name,
            "oldValue": old_value,
            "newValue": new_value,
            "assessmentId": str(current.id),
            "reason": reason,
            "rectifiedAt": now.isoformat(),
        }

    @staticmethod
    def _resolve_field(field: str) -> str:
        if field in RECTIFIABLE_FIELDS:
            return RECTIFIABLE_FIELDS[field]
        if field in RECTIFIABLE_FIELDS.values():
            return field
        msg = f"Field '{field}' cannot be rectified"
        raise ValidationError(msg, details=[{"field": "field", "allowed": sorted(RECTIFIABLE_FIELDS.values())}])

    async def _target_assessment(self, owner_id: str, assessment_id: uuid.UUID | None) -> Assessment:
        if assessment_id is not None:
            assessment = await self._repos.assessments.find_by_id_and_owner(assessment_id, owner_id)
        else:
            owned = await self._repos.assessments.list_by_owner(owner_id)
            assessment = max(owned, key=lambda a: a.created_at) if owned else None
        if assessment is None:
            msg = "Assessment not found"
            raise NotFoundError(msg)
        return assessment

    # ── Restriction ──────────────────────────────────────────────────

    async def restrict_processing(
        self,
        owner_id: str,
        reason: str,
        categories: list[str] | None = None,
        duration_days: int = 30,
    ) -> dict[str, Any]:
        """Create a time-boxed restriction. Covered assessments move to `restricted`."""
        if not 1 <= duration_days <= 365:
            msg = "Duration must be between 1 and 365 days"
            raise ValidationError(msg)

        now = datetime.now(UTC)
        restriction = DataRestriction(
            id=uuid.uuid4(),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            reason=reason,
            categories=list(categories or []),
            start_date=now,
            end_date=now + timedelta(days=duration_days),
            status=RestrictionStatus.ACTIVE.value,
        )
        await self._repos.restrictions.save(restriction)

        restricted = 0
        if not restriction.categories or _ASSESSMENT_RESTRICTION_CATEGORIES & set(restriction.categories):
            restricted = await self._restrict_assessments(owner_id)

        await self._bus.emit(SystemEvent(
            event_type=EventType.PROCESSING_RESTRICTED,
            owner_id=owner_id,
            actor_role="user",
            data={
                "restriction_id": str(restriction.id),
                "categories": restriction.categories,
                "duration_days": duration_days,
                "assessments_restricted": restricted,
            },
            source_module="security.data_rights",
        ))
        logger.info("Processing restricted: owner=%s days=%d assessments=%d", owner_id, duration_days, restricted)

        return {**restriction_to_dict(restriction, now), "restrictedAssessments": restricted}

    async def _restrict_assessments(self, owner_id: str) -> int:
        count = 0
        for assessment in await self._repos.assessments.list_by_owner(owner_id):
            async with self._locks(assessment.id):
                current = await self._repos.assessments.find_by_id_and_owner(assessment.id, owner_id)
                if current is None:
                    continue
                fsm = AssessmentFSM(current, self._bus)
                if not fsm.can_transition("restrict"):
                    continue
                await fsm.transition("restrict")
                current.updated_at = datetime.now(UTC)
                await self._repos.assessments.save(current)
                count += 1
        return count

    # ── Erasure ──────────────────────────────────────────────────────

    async def delete_user_data(
        self,
        owner_id: str,
        categories: Iterable[DataCategory] | None = None,
        reason: str | None = None,
    ) -> ErasureResult:
        return await self._erasure.erase(owner_id, categories, reason or "User request")

    # ── Objection ────────────────────────────────────────────────────

    async def object_to_processing(
        self,
        owner_id: str,
        reason: str,
        processing_type: str,
        categories: list[str] | None = None,
    ) -> dict[str, Any]:
        """Record an objection. Processing is not halted here."""
        now = datetime.now(UTC)
        objection = ProcessingObjection(
            id=uuid.uuid4(),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            reason=reason,
            processing_type=processing_type,
            categories=list(categories or []),
            status=ObjectionStatus.RECEIVED.value,
            submitted_at=now,
        )
        await self._repos.objections.save(objection)

        await self._bus.emit(SystemEvent(
            event_type=EventType.PROCESSING_OBJECTED,
            owner_id=owner_id,
            actor_role="user",
            data={"objection_id": str(objection.id), "processing_type": processing_type},
            source_module="security.data_rights",
        ))
        logger.info("Processing objection recorded: owner=%s type=%s", owner_id, processing_type)
        return objection_to_dict(objection)
