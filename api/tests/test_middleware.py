"""Tests for the rate limiter and request logging helpers."""

import pytest
from fastapi import HTTPException

from abi.config import Settings
from abi.middleware.logging_middleware import normalize_path
from abi.middleware.rate_limiter import check_rate_limit


class FakeRedis:
    """Records eval calls and answers with a fixed allow/deny result."""

    def __init__(self, allowed: int) -> None:
        self.allowed = allowed
        self.calls: list[tuple] = []

    async def eval(self, script, numkeys, *args):
        self.calls.append(args)
        return self.allowed


class TestCheckRateLimit:
    async def test_allowed_request_passes(self):
        redis = FakeRedis(allowed=1)
        settings = Settings(rate_limit_enabled=True, rate_limit_read_per_minute=120)

        await check_rate_limit("user-1", redis, "read", settings)

        key, max_tokens, refill_rate, _now = redis.calls[0]
        assert key == "rl:user-1:read"
        assert max_tokens == 120
        assert refill_rate == pytest.approx(2.0)

    async def test_write_bucket_uses_write_limit(self):
        redis = FakeRedis(allowed=1)
        settings = Settings(rate_limit_enabled=True, rate_limit_write_per_minute=30)

        await check_rate_limit("user-1", redis, "write", settings)

        assert redis.calls[0][0] == "rl:user-1:write"
        assert redis.calls[0][1] == 30

    async def test_empty_bucket_is_429_with_retry_after(self):
        redis = FakeRedis(allowed=0)
        settings = Settings(rate_limit_enabled=True)

        with pytest.raises(HTTPException) as exc_info:
            await check_rate_limit("ip:10.0.0.1", redis, "write", settings)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers == {"Retry-After": "60"}

    async def test_disabled_limiter_never_touches_redis(self):
        redis = FakeRedis(allowed=0)

        await check_rate_limit("user-1", redis, "read", Settings(rate_limit_enabled=False))

        assert redis.calls == []


class TestNormalizePath:
    def test_uuid_segments_collapse(self):
        path = (
            "/api/community/questions/3f1a9c2e-7b10-4c1e-9a8b-0123456789ab"
            "/accept/c92e6a0d-5f47-4a2b-8c3d-0123456789ab"
        )
        assert normalize_path(path) == "/api/community/questions/{id}/accept/{id}"

    def test_plain_paths_untouched(self):
        assert normalize_path("/api/community/leaderboard") == "/api/community/leaderboard"
