"""Redis-backed fixed-window rate limiter.

Uses INCR + EXPIRE for simple, performant rate limiting. Applied per caller
IP by the HTTP middleware, before identity, gate, or provider work.

Usage:
    limiter = RateLimiter(redis.asyncio.from_url(settings.db.redis_url))

    allowed, retry_after = await limiter.check("rate:203.0.113.7", limit=100, window=900)
"""

from __future__ import annotations

import logging
from typing import Any

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window rate limiter backed by Redis INCR + EXPIRE."""

    def __init__(self, redis: Any) -> None:
        self._redis = redis

    async def check(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        """Check if a request is within the rate limit.

        Args:
            key: Redis key (e.g. "rate:{caller_ip}").
            limit: Max requests allowed in the window.
            window: Window size in seconds.

        Returns:
            (allowed, retry_after) — allowed is True if under limit,
            retry_after is seconds until window resets (0 if allowed).
        """
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, window)

            if count > limit:
                ttl = await self._redis.ttl(key)
                retry_after = max(ttl, 1)
                return False, retry_after

            return True, 0
        except (RedisError, OSError):
            logger.exception("Rate limiter Redis error for key %s", key)
            # Fail open while Redis is down
            return True, 0

    async def close(self) -> None:
        await self._redis.aclose()
