"""In-memory adapters for the storage ports.

Dict-backed, process-local, no durability. Used by the test suite and for
running the service without PostgreSQL.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Generic, TypeVar

from nutribot.errors import PersistenceError
from nutribot.models.assessment import Assessment
from nutribot.models.audit import AuditLog
from nutribot.models.consent import Consent
from nutribot.models.deletion import DataDeletionRequest
from nutribot.models.enums import RestrictionStatus
from nutribot.models.objection import ProcessingObjection
from nutribot.models.restriction import DataRestriction
from nutribot.storage.ports import Repositories

ModelT = TypeVar("ModelT", Assessment, Consent, DataRestriction, ProcessingObjection, DataDeletionRequest)


class _MemoryRepository(Generic[ModelT]):
    def __init__(self) -> None:
        self._rows: dict[uuid.UUID, ModelT] = {}

    def __len__(self) -> int:
        return len(self._rows)

    async def save(self, record: ModelT) -> None:
        if record.id is None:
            record.id = uuid.uuid4()
        now = datetime.now(UTC)
        if record.created_at is None:
            record.created_at = now
        record.updated_at = now
        self._rows[record.id] = record

    async def list_by_owner(self, owner_id: str) -> list[ModelT]:
        rows = [r for r in self._rows.values() if r.owner_id == owner_id]
        return sorted(rows, key=lambda r: r.created_at)

    async def delete_by_owner(self, owner_id: str) -> int:
        doomed = [key for key, r in self._rows.items() if r.owner_id == owner_id]
        for key in doomed:
            del self._rows[key]
        return len(doomed)


class MemoryAssessmentRepository(_MemoryRepository[Assessment]):
    async def find_by_id_and_owner(self, assessment_id: uuid.UUID, owner_id: str) -> Assessment | None:
        row = self._rows.get(assessment_id)
        if row is None or row.owner_id != owner_id:
            return None
        return row

    async def delete_by_id_and_owner(self, assessment_id: uuid.UUID, owner_id: str) -> bool:
        if await self.find_by_id_and_owner(assessment_id, owner_id) is None:
            return False
        del self._rows[assessment_id]
        return True

    async def delete_created_before(self, cutoff: datetime) -> int:
        doomed = [key for key, r in self._rows.items() if r.created_at < cutoff]
        for key in doomed:
            del self._rows[key]
        return len(doomed)


class MemoryConsentRepository(_MemoryRepository[Consent]):
    async def delete_by_owner(self, owner_id: str) -> int:
        msg = "Consent records are never deleted; revoke them instead"
        raise PersistenceError(msg)


class MemoryRestrictionRepository(_MemoryRepository[DataRestriction]):
    async def expire_ended(self, now: datetime) -> int:
        count = 0
        for row in self._rows.values():
            if row.status == RestrictionStatus.ACTIVE.value and row.end_date <= now:
                row.status = RestrictionStatus.EXPIRED.value
                count += 1
        return count


class MemoryObjectionRepository(_MemoryRepository[ProcessingObjection]):
    pass


class MemoryDeletionRequestRepository(_MemoryRepository[DataDeletionRequest]):
    pass


class MemoryAuditRepository:
    def __init__(self) -> None:
        self.entries: list[AuditLog] = []

    async def append(self, entry: AuditLog) -> None:
        self.entries.append(entry)


def build_memory_repositories() -> Repositories:
    return Repositories(
        assessments=MemoryAssessmentRepository(),
        consents=MemoryConsentRepository(),
        restrictions=MemoryRestrictionRepository(),
        objections=MemoryObjectionRepository(),
        deletion_requests=MemoryDeletionRequestRepository(),
        audit=MemoryAuditRepository(),
    )
