"""Tests for the Redis fixed-window rate limiter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from nutribot.security.rate_limiter import RateLimiter


def _redis(count: int, ttl: int = 600) -> AsyncMock:
    redis = AsyncMock()
    redis.incr.return_value = count
    redis.ttl.return_value = ttl
    return redis


class TestRateLimiter:
    @pytest.mark.asyncio()
    async def test_first_hit_sets_window(self) -> None:
        redis = _redis(1)
        allowed, retry_after = await RateLimiter(redis).check("rate:203.0.113.7", limit=100, window=900)

        assert (allowed, retry_after) == (True, 0)
        redis.expire.assert_awaited_once_with("rate:203.0.113.7", 900)

    @pytest.mark.asyncio()
    async def test_within_limit_does_not_reset_window(self) -> None:
        redis = _redis(100)
        allowed, _ = await RateLimiter(redis).check("k", limit=100, window=900)

        assert allowed
        redis.expire.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_over_limit_returns_retry_after(self) -> None:
        allowed, retry_after = await RateLimiter(_redis(101, ttl=42)).check("k", limit=100, window=900)
        assert not allowed
        assert retry_after == 42

    @pytest.mark.asyncio()
    async def test_retry_after_is_at_least_one(self) -> None:
        _, retry_after = await RateLimiter(_redis(101, ttl=-1)).check("k", limit=100, window=900)
        assert retry_after == 1

    @pytest.mark.asyncio()
    async def test_fails_open_when_redis_is_down(self) -> None:
        redis = AsyncMock()
        redis.incr.side_effect = RedisConnectionError("refused")
        assert await RateLimiter(redis).check("k", limit=1, window=60) == (True, 0)

    @pytest.mark.asyncio()
    async def test_close(self) -> None:
        redis = AsyncMock()
        await RateLimiter(redis).close()
        redis.aclose.assert_awaited_once()
