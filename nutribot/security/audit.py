"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber (receives ALL events). This is the
system's immutable audit trail for compliance and debugging.

Never raises — failures are logged but never propagate to the event bus.
"""

from __future__ import annotations

import logging

from nutribot.models.audit import AuditLog
from nutribot.schemas.events import SystemEvent
from nutribot.storage.ports import AuditRepository

logger = logging.getLogger(__name__)


class AuditLogger:
    """Turns SystemEvents into AuditLog rows."""

    def __init__(self, repository: AuditRepository) -> None:
        self._repository = repository

    async def on_event(self, event: SystemEvent) -> None:
        """Write a SystemEvent to the audit_log table.

        Failures are logged and swallowed — audit logging must never
        crash the main application flow.
        """
        try:
            await self._repository.append(AuditLog(
                id=event.id,
                created_at=event.timestamp,
                updated_at=event.timestamp,
                event_type=event.event_type.value,
                assessment_id=event.assessment_id,
                owner_id=event.owner_id,
                actor_role=event.actor_role,
                data=event.data,
            ))
        except Exception:
            logger.exception(
                "Failed to persist audit event: %s (assessment=%s)",
                event.event_type.value,
                event.assessment_id,
            )
