"""Caller identity and consent-token verification.

Token issuance lives outside this service; these verifiers only check what an
upstream issuer produced. Both default implementations use HMAC-SHA256 with a
constant-time comparison and can be swapped for any object with the same
method.

Token formats:
    identity: "<owner_id>.<hex hmac(owner_id)>"
    consent:  "<subject>:<expires_at unix seconds>:<hex hmac(subject:expires_at)>"
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Protocol

logger = logging.getLogger(__name__)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> str | None:
        """Return the verified owner id, or None when the token is not valid."""
        ...


class ConsentValidator(Protocol):
    def validate_consent(self, token: str) -> bool: ...


def _sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


class HmacIdentityVerifier:
    """Verifies `<owner_id>.<signature>` bearer tokens."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def issue(self, owner_id: str) -> str:
        return f"{owner_id}.{_sign(self._secret, owner_id)}"

    def verify(self, token: str) -> str | None:
        if not self._secret:
            logger.warning("AUTH_SECRET not set — rejecting all identity tokens")
            return None
        owner_id, sep, signature = token.rpartition(".")
        if not sep or not owner_id:
            return None
        if not hmac.compare_digest(_sign(self._secret, owner_id), signature):
            return None
        return owner_id


class HmacConsentValidator:
    """Validates expiring consent tokens issued by the consent front-end."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def issue(self, subject: str, expires_at: int) -> str:
        payload = f"{subject}:{expires_at}"
        return f"{payload}:{_sign(self._secret, payload)}"

    def validate_consent(self, token: str) -> bool:
        if not self._secret or not token:
            return False
        parts = token.split(":")
        if len(parts) != 3:
            return False
        subject, expires_raw, signature = parts
        try:
            expires_at = int(expires_raw)
        except ValueError:
            return False
        if not hmac.compare_digest(_sign(self._secret, f"{subject}:{expires_raw}"), signature):
            return False
        return expires_at > time.time()
