"""FastAPI dependencies — service lookup, caller identity, privacy context."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from fastapi import Depends, Header, Query, Request

from nutribot.container import Services
from nutribot.errors import UnauthorizedError
from nutribot.privacy.context import PrivacyContext, resolve_privacy_context

CONSENT_HEADER = "X-Consent-Token"
CONSENT_COOKIE = "consentToken"


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_owner(
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> str:
    """Verified owner id from the `Authorization: Bearer` header.

    Raises UnauthorizedError (401) when the header is missing or the
    IdentityVerifier rejects the token.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        msg = "Authentication required"
        raise UnauthorizedError(msg)

    owner_id = services.identity.verify(token.strip())
    if not owner_id:
        msg = "Invalid authentication token"
        raise UnauthorizedError(msg)
    return owner_id


async def get_privacy_context(
    request: Request,
    include_health_data: bool = Query(default=False, alias="includeHealthData"),
    x_consent_token: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> PrivacyContext:
    """Fresh PrivacyContext for this request."""
    token = x_consent_token or request.cookies.get(CONSENT_COOKIE)
    context = resolve_privacy_context(
        services.settings.privacy,
        services.consent_validator,
        consent_token=token,
        caller_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        include_health_data=include_health_data,
    )
    request.state.privacy = context
    return context
