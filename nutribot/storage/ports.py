"""Storage ports — the persistence contract the services depend on.

Every lookup is owner-scoped: a record that exists but belongs to another
owner is indistinguishable from a missing one. Adapters commit per call, so a
successful `save` is durable before the caller moves on.

Two adapter families implement these protocols:
    nutribot.storage.sql     — SQLAlchemy 2.0 async (PostgreSQL via asyncpg)
    nutribot.storage.memory  — dict-backed, for tests and local runs
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from nutribot.models.assessment import Assessment
from nutribot.models.audit import AuditLog
from nutribot.models.consent import Consent
from nutribot.models.deletion import DataDeletionRequest
from nutribot.models.objection import ProcessingObjection
from nutribot.models.restriction import DataRestriction


class AssessmentRepository(Protocol):
    async def save(self, assessment: Assessment) -> None: ...

    async def find_by_id_and_owner(self, assessment_id: uuid.UUID, owner_id: str) -> Assessment | None: ...

    async def delete_by_id_and_owner(self, assessment_id: uuid.UUID, owner_id: str) -> bool: ...

    async def list_by_owner(self, owner_id: str) -> list[Assessment]: ...

    async def delete_by_owner(self, owner_id: str) -> int: ...

    async def delete_created_before(self, cutoff: datetime) -> int: ...


class ConsentRepository(Protocol):
    async def save(self, consent: Consent) -> None: ...

    async def list_by_owner(self, owner_id: str) -> list[Consent]: ...


class RestrictionRepository(Protocol):
    async def save(self, restriction: DataRestriction) -> None: ...

    async def list_by_owner(self, owner_id: str) -> list[DataRestriction]: ...

    async def delete_by_owner(self, owner_id: str) -> int: ...

    async def expire_ended(self, now: datetime) -> int: ...


class ObjectionRepository(Protocol):
    async def save(self, objection: ProcessingObjection) -> None: ...

    async def list_by_owner(self, owner_id: str) -> list[ProcessingObjection]: ...

    async def delete_by_owner(self, owner_id: str) -> int: ...


class DeletionRequestRepository(Protocol):
    async def save(self, request: DataDeletionRequest) -> None: ...

    async def list_by_owner(self, owner_id: str) -> list[DataDeletionRequest]: ...


class AuditRepository(Protocol):
    async def append(self, entry: AuditLog) -> None: ...


@dataclass(frozen=True)
class Repositories:
    """The full set of stores, built once and shared by every service."""

    assessments: AssessmentRepository
    consents: ConsentRepository
    restrictions: RestrictionRepository
    objections: ObjectionRepository
    deletion_requests: DeletionRequestRepository
    audit: AuditRepository
