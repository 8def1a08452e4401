"""Privacy pipeline — minimization then anonymization, with a failure policy.

When the request's context requires anonymization and `fail_closed` is set, a
failure in either step rejects the request (ANONYMIZATION_FAILED) and nothing
reaches a provider. Otherwise the failure is logged and the payload passes
through unmodified.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from nutribot.errors import AnonymizationError
from nutribot.events import EventBus
from nutribot.models.enums import OperationCategory
from nutribot.privacy.anonymizer import anonymize
from nutribot.privacy.context import PrivacyContext
from nutribot.privacy.minimization import minimize
from nutribot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class PrivacyPipeline:
    def __init__(self, bus: EventBus, *, fail_closed: bool = True) -> None:
        self._bus = bus
        self._fail_closed = fail_closed

    async def prepare(
        self,
        payload: Mapping[str, Any],
        category: OperationCategory,
        context: PrivacyContext,
        *,
        owner_id: str | None = None,
    ) -> Any:
        """Return the payload as it may leave the trust boundary."""
        try:
            result: Any = dict(payload)
            if context.data_minimization_enabled:
                result = minimize(result, category)
            if context.anonymization_enabled:
                result = anonymize(result, context.anonymization_level)
            return result
        except Exception as exc:
            await self._bus.emit(SystemEvent(
                event_type=EventType.ANONYMIZATION_FAILED,
                owner_id=owner_id,
                data={"category": category.value, "error_type": type(exc).__name__},
                source_module="privacy.pipeline",
            ))
            if self._fail_closed and context.anonymization_enabled:
                logger.exception("Privacy pipeline failed for %s; rejecting request", category.value)
                msg = "Anonymization failed; request rejected"
                raise AnonymizationError(msg) from exc
            logger.exception("Privacy pipeline failed for %s; passing payload through", category.value)
            return payload
