"""SQLAlchemy async adapters for the storage ports.

One session and one transaction per call; the session factory is built with
expire_on_commit=False so returned records stay readable after the commit.
Driver errors are wrapped in PersistenceError so the HTTP layer maps them to
500 PERSISTENCE_ERROR. Assessments carry a version counter: saving a copy that
another worker has updated since it was read raises ConcurrentUpdateError (409)
instead of overwriting that worker's answers.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Generic, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from nutribot.errors import ConcurrentUpdateError, PersistenceError
from nutribot.models.assessment import Assessment
from nutribot.models.audit import AuditLog
from nutribot.models.consent import Consent
from nutribot.models.deletion import DataDeletionRequest
from nutribot.models.enums import RestrictionStatus
from nutribot.models.objection import ProcessingObjection
from nutribot.models.restriction import DataRestriction
from nutribot.storage.ports import Repositories

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", Assessment, Consent, DataRestriction, ProcessingObjection, DataDeletionRequest)


class _SqlRepository(Generic[ModelT]):
    """Shared owner-scoped operations for every table."""

    model: type[ModelT]

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except StaleDataError as exc:
            logger.warning("Stale write rejected on %s", self.model.__tablename__)
            msg = f"{self.model.__tablename__} record was modified concurrently"
            raise ConcurrentUpdateError(msg) from exc
        except SQLAlchemyError as exc:
            logger.exception("Storage error on %s", self.model.__tablename__)
            msg = f"Storage failure on {self.model.__tablename__}"
            raise PersistenceError(msg) from exc

    async def save(self, record: ModelT) -> None:
        """Insert or update by primary key."""
        async with self._session() as session:
            await session.merge(record)

    async def list_by_owner(self, owner_id: str) -> list[ModelT]:
        async with self._session() as session:
            result = await session.execute(
                select(self.model)
                .where(self.model.owner_id == owner_id)
                .order_by(self.model.created_at.asc())
            )
            return list(result.scalars().all())

    async def delete_by_owner(self, owner_id: str) -> int:
        async with self._session() as session:
            result = await session.execute(delete(self.model).where(self.model.owner_id == owner_id))
            return int(result.rowcount or 0)  # type: ignore[attr-defined]


class SqlAssessmentRepository(_SqlRepository[Assessment]):
    model = Assessment

    async def save(self, record: Assessment) -> None:
        """Merge under the version counter. A copy read before another writer's save is rejected."""
        async with self._session() as session:
            merged = await session.merge(record)
            await session.flush()
            record.version = merged.version

    async def find_by_id_and_owner(self, assessment_id: uuid.UUID, owner_id: str) -> Assessment | None:
        async with self._session() as session:
            result = await session.execute(
                select(Assessment).where(
                    Assessment.id == assessment_id,
                    Assessment.owner_id == owner_id,
                )
            )
            return result.scalar_one_or_none()

    async def delete_by_id_and_owner(self, assessment_id: uuid.UUID, owner_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(Assessment).where(
                    Assessment.id == assessment_id,
                    Assessment.owner_id == owner_id,
                )
            )
            return bool(result.rowcount)  # type: ignore[attr-defined]

    async def delete_created_before(self, cutoff: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(delete(Assessment).where(Assessment.created_at < cutoff))
            return int(result.rowcount or 0)  # type: ignore[attr-defined]


class SqlConsentRepository(_SqlRepository[Consent]):
    model = Consent

    async def delete_by_owner(self, owner_id: str) -> int:
        msg = "Consent records are never deleted; revoke them instead"
        raise PersistenceError(msg)


class SqlRestrictionRepository(_SqlRepository[DataRestriction]):
    model = DataRestriction

    async def expire_ended(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(
                update(DataRestriction)
                .where(
                    DataRestriction.status == RestrictionStatus.ACTIVE.value,
                    DataRestriction.end_date <= now,
                )
                .values(status=RestrictionStatus.EXPIRED.value)
            )
            return int(result.rowcount or 0)  # type: ignore[attr-defined]


class SqlObjectionRepository(_SqlRepository[ProcessingObjection]):
    model = ProcessingObjection


class SqlDeletionRequestRepository(_SqlRepository[DataDeletionRequest]):
    model = DataDeletionRequest


class SqlAuditRepository:
    """Append-only writer for the audit_log table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, entry: AuditLog) -> None:
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except SQLAlchemyError as exc:
            msg = "Failed to append audit entry"
            raise PersistenceError(msg) from exc


def build_sql_repositories(session_factory: async_sessionmaker[AsyncSession]) -> Repositories:
    """Wire every SQL adapter to one session factory."""
    return Repositories(
        assessments=SqlAssessmentRepository(session_factory),
        consents=SqlConsentRepository(session_factory),
        restrictions=SqlRestrictionRepository(session_factory),
        objections=SqlObjectionRepository(session_factory),
        deletion_requests=SqlDeletionRequestRepository(session_factory),
        audit=SqlAuditRepository(session_factory),
    )
