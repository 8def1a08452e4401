"""HTTP middleware — correlation id, rate limiting, security and privacy headers.

Registered outermost first in `nutribot.main`:

1. correlation id bound into structlog contextvars for every log line
2. per-IP fixed-window rate limit (429 RATE_LIMIT_EXCEEDED), only when a
   limiter is configured
3. security headers on every response, plus the data-retention
   transparency headers whenever a PrivacyContext was resolved
"""

from __future__ import annotations

import logging
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from nutribot.api.errors import error_response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

# Never rate limited
_EXEMPT_PREFIXES = ("/health",)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        services = getattr(request.app.state, "services", None)
        limiter = services.rate_limiter if services is not None else None
        if limiter is None or request.url.path.startswith(_EXEMPT_PREFIXES):
            return await call_next(request)

        caller_ip = request.client.host if request.client else "unknown"
        limits = services.settings.rate_limit
        allowed, retry_after = await limiter.check(
            f"rate:{caller_ip}",
            limit=limits.rate_limit_max_requests,
            window=limits.rate_limit_window_seconds,
        )
        if not allowed:
            logger.warning("Rate limit exceeded: ip=%s retry_after=%d", caller_ip, retry_after)
            return error_response(
                request,
                429,
                "Too many requests, please try again later",
                "RATE_LIMIT_EXCEEDED",
                {"retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)


class PrivacyHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        context = getattr(request.state, "privacy", None)
        if context is not None:
            response.headers.update(context.headers())
        return response


def register_middleware(app: FastAPI) -> None:
    # Starlette runs the last-added middleware first
    app.add_middleware(PrivacyHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
