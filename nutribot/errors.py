"""Exception taxonomy.

Every error the HTTP layer can surface derives from NutribotError and carries
its own machine-readable code and HTTP status. ProviderError is internal: the
provider chain consumes it and only surfaces it when no rule-based floor is
configured.
"""

from __future__ import annotations

from typing import Any


class NutribotError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        """Extra fields merged into the error envelope."""
        return {"details": self.details} if self.details is not None else {}


class ValidationError(NutribotError):
    """Client-correctable input problem."""

    code = "VALIDATION_ERROR"
    status_code = 400


class DuplicateAnswerError(ValidationError):
    """The question was already answered; the answer is not reprocessed."""

    code = "DUPLICATE_ANSWER"
    status_code = 409


class UnauthorizedError(NutribotError):
    """No verifiable caller identity on a protected route."""

    code = "UNAUTHORIZED"
    status_code = 401


class NotFoundError(NutribotError):
    """Owner-scoped lookup miss (also used when the record belongs to someone else)."""

    code = "NOT_FOUND"
    status_code = 404


class ConsentError(NutribotError):
    """Missing, invalid, or expired consent."""

    code = "CONSENT_REQUIRED"
    status_code = 403


class HealthConsentRequiredError(ConsentError):
    code = "HEALTH_CONSENT_REQUIRED"

    def __init__(self, message: str = "Explicit consent required for health data processing") -> None:
        super().__init__(message)


class MissingConsentsError(ConsentError):
    code = "MISSING_CONSENTS"

    def __init__(self, missing: list[str]) -> None:
        super().__init__("Missing required consents")
        self.missing = missing

    def to_payload(self) -> dict[str, Any]:
        return {"missingConsents": self.missing}


class ProcessingRestrictedError(ConsentError):
    code = "PROCESSING_RESTRICTED"

    def __init__(self, category: str) -> None:
        super().__init__(f"Processing of '{category}' is restricted at the data subject's request")
        self.category = category


class ProviderError(NutribotError):
    """An inference backend failed, timed out, or returned garbage."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class PersistenceError(NutribotError):
    """Storage failure. Fatal for the request; nothing partial is committed."""

    code = "PERSISTENCE_ERROR"
    status_code = 500


class ConcurrentUpdateError(PersistenceError):
    """The record changed in storage since it was read; retry the request."""

    code = "CONCURRENT_UPDATE"
    status_code = 409


class AnonymizationError(NutribotError):
    """Anonymization or minimization failed on a path that requires it."""

    code = "ANONYMIZATION_FAILED"
    status_code = 500
