"""Right-to-erasure processor — GDPR Art. 17 deletion.

Hard-deletes assessments, restrictions and objections. Consents are revoked,
never deleted, and the DataDeletionRequest row is kept, so the audit trail
outlives the data. Deleted counts are exact: each assessment is deleted under
its per-id lock so an in-flight answer cannot resurrect it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from nutribot.assessment.fsm import AssessmentFSM
from nutribot.assessment.locks import KeyedLock
from nutribot.errors import NotFoundError
from nutribot.events import EventBus
from nutribot.models.deletion import DataDeletionRequest
from nutribot.models.enums import DataCategory, DeletionRequestStatus
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.security.consent import ConsentManager
from nutribot.storage.ports import Repositories

logger = logging.getLogger(__name__)

ALL_CATEGORIES: frozenset[DataCategory] = frozenset(DataCategory)


@dataclass
class ErasureResult:
    """Summary of a completed erasure operation."""

    success: bool = False
    deletion_request_id: Any = None
    assessments: int = 0
    restrictions: int = 0
    objections: int = 0
    consents_revoked: int = 0
    error: str | None = None

    @property
    def deleted_records(self) -> int:
        return self.assessments + self.restrictions + self.objections


class ErasureProcessor:
    """Processes GDPR right-to-erasure requests."""

    def __init__(
        self,
        repositories: Repositories,
        consents: ConsentManager,
        bus: EventBus,
        locks: KeyedLock,
    ) -> None:
        self._repos = repositories
        self._consents = consents
        self._bus = bus
        self._locks = locks

    async def erase(
        self,
        owner_id: str,
        categories: Iterable[DataCategory] | None = None,
        reason: str = "User request",
    ) -> ErasureResult:
        """Delete the selected categories (all when empty).

        Raises NotFoundError before touching anything when the owner has
        nothing in the selected categories.
        """
        selected = frozenset(categories or ()) or ALL_CATEGORIES

        assessments = (
            await self._repos.assessments.list_by_owner(owner_id)
            if DataCategory.ASSESSMENTS in selected else []
        )
        restrictions = (
            await self._repos.restrictions.list_by_owner(owner_id)
            if DataCategory.RESTRICTIONS in selected else []
        )
        objections = (
            await self._repos.objections.list_by_owner(owner_id)
            if DataCategory.OBJECTIONS in selected else []
        )
        revocable = (
            [c for c in await self._consents.list_consents(owner_id) if c.revoked_at is None]
            if DataCategory.CONSENTS in selected else []
        )
        if not (assessments or restrictions or objections or revocable):
            msg = "No personal data found for the selected categories"
            raise NotFoundError(msg)

        request = await self._request(owner_id, selected, reason)
        result = ErasureResult(deletion_request_id=request.id)

        try:
            for assessment in assessments:
                async with self._locks(assessment.id):
                    current = await self._repos.assessments.find_by_id_and_owner(assessment.id, owner_id)
                    if current is None:
                        continue
                    await AssessmentFSM(current, self._bus).transition("delete")
                    if await self._repos.assessments.delete_by_id_and_owner(current.id, owner_id):
                        result.assessments += 1

            if DataCategory.RESTRICTIONS in selected:
                result.restrictions = await self._repos.restrictions.delete_by_owner(owner_id)
            if DataCategory.OBJECTIONS in selected:
                result.objections = await self._repos.objections.delete_by_owner(owner_id)
            if DataCategory.CONSENTS in selected:
                result.consents_revoked = len(await self._consents.revoke_all(owner_id, reason="erasure"))
        except Exception as exc:
            result.error = type(exc).__name__
            request.status = DeletionRequestStatus.FAILED.value
            request.deleted_records = result.deleted_records
            request.updated_at = datetime.now(UTC)
            await self._repos.deletion_requests.save(request)
            logger.exception("Erasure failed: request=%s", request.id)
            raise

        now = datetime.now(UTC)
        request.status = DeletionRequestStatus.COMPLETED.value
        request.completed_at = now
        request.updated_at = now
        request.deleted_records = result.deleted_records
        await self._repos.deletion_requests.save(request)
        result.success = True

        await self._bus.emit(SystemEvent(
            event_type=EventType.DELETION_COMPLETED,
            owner_id=owner_id,
            actor_role="user",
            data={
                "deletion_request_id": str(request.id),
                "assessments": result.assessments,
                "restrictions": result.restrictions,
                "objections": result.objections,
                "consents_revoked": result.consents_revoked,
            },
            source_module="security.erasure",
        ))

        logger.info(
            "Erasure completed: owner=%s assessments=%d restrictions=%d objections=%d",
            owner_id,
            result.assessments,
            result.restrictions,
            result.objections,
        )
        return result

    async def _request(
        self,
        owner_id: str,
        categories: frozenset[DataCategory],
        reason: str,
    ) -> DataDeletionRequest:
        """Create a PENDING deletion request and emit event."""
        now = datetime.now(UTC)
        request = DataDeletionRequest(
            id=uuid.uuid4(),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            reason=reason,
            categories=sorted(c.value for c in categories),
            status=DeletionRequestStatus.PENDING.value,
            requested_at=now,
            completed_at=None,
            deleted_records=0,
        )
        await self._repos.deletion_requests.save(request)

        await self._bus.emit(SystemEvent(
            event_type=EventType.DELETION_REQUESTED,
            owner_id=owner_id,
            actor_role="user",
            data={"deletion_request_id": str(request.id), "categories": request.categories},
            source_module="security.erasure",
        ))
        logger.info("Erasure requested: owner=%s request=%s", owner_id, request.id)
        return request
