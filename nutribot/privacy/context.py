"""Per-request privacy posture.

A PrivacyContext is built fresh for every request from the immutable privacy
settings, the consent token (validated by an injected ConsentValidator) and
request metadata. It is never persisted and never shared between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from nutribot.config import PrivacySettings
from nutribot.models.enums import AnonymizationLevel
from nutribot.security.identity import ConsentValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrivacyContext:
    timestamp: datetime
    caller_ip: str | None
    user_agent: str | None
    consent_valid: bool
    data_minimization_enabled: bool
    anonymization_enabled: bool
    anonymization_level: AnonymizationLevel
    compliance_flags: frozenset[str] = field(default_factory=frozenset)
    data_retention_days: int = 730
    include_health_data: bool = False

    def retention_date(self) -> datetime:
        return self.timestamp + timedelta(days=self.data_retention_days)

    def metadata(self) -> dict[str, Any]:
        """The `privacy` block carried by every response body."""
        return {
            "dataRetentionDays": self.data_retention_days,
            "anonymization": self.anonymization_enabled,
            "consentValid": self.consent_valid,
        }

    def headers(self) -> dict[str, str]:
        """Transparency headers. Informational only."""
        return {
            "X-Data-Retention-Date": self.retention_date().isoformat(),
            "X-Data-Retention-Days": str(self.data_retention_days),
            "X-Data-Anonymization": "true" if self.anonymization_enabled else "false",
        }


def resolve_privacy_context(
    settings: PrivacySettings,
    validator: ConsentValidator,
    *,
    consent_token: str | None = None,
    caller_ip: str | None = None,
    user_agent: str | None = None,
    include_health_data: bool = False,
) -> PrivacyContext:
    """Build the PrivacyContext for one request.

    The raw health-data projection is only authorized when it was asked for
    and the consent token is valid.
    """
    consent_valid = False
    if consent_token:
        try:
            consent_valid = bool(validator.validate_consent(consent_token))
        except Exception:
            logger.exception("Consent validator failed; treating consent as invalid")
            consent_valid = False

    return PrivacyContext(
        timestamp=datetime.now(UTC),
        caller_ip=caller_ip,
        user_agent=user_agent,
        consent_valid=consent_valid,
        data_minimization_enabled=settings.data_minimization_enabled,
        anonymization_enabled=settings.anonymization_enabled,
        anonymization_level=AnonymizationLevel(settings.anonymization_level),
        compliance_flags=settings.compliance_flags,
        data_retention_days=settings.data_retention_days,
        include_health_data=include_health_data and consent_valid,
    )
