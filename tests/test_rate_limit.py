"""Tests for the proxy rate limiter."""

import asyncio

import pytest
from limits.aio.storage import MemoryStorage

from etf_backend.errors import RateLimited
from etf_backend.services import rate_limit
from etf_backend.services.rate_limit import RateLimiter, build_rate_limiter, build_storage


@pytest.fixture
def limiter():
    return RateLimiter(MemoryStorage(), max_requests=50, window_seconds=60)


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_51st_request_is_limited(self, limiter):
        for _ in range(50):
            await limiter.check("client-a")
        with pytest.raises(RateLimited) as exc_info:
            await limiter.check("client-a")
        assert exc_info.value.status_code == 429
        assert 0 < exc_info.value.retry_after <= 60

    @pytest.mark.asyncio
    async def test_window_resets(self):
        limiter = RateLimiter(MemoryStorage(), max_requests=3, window_seconds=1)
        for _ in range(3):
            await limiter.check("client-a")
        with pytest.raises(RateLimited):
            await limiter.check("client-a")

        await asyncio.sleep(1.2)
        await limiter.check("client-a")

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, limiter):
        for _ in range(50):
            await limiter.check("client-a")
        await limiter.check("client-b")


class TestBuildRateLimiter:
    def test_memory_storage_without_redis_url(self):
        assert isinstance(build_storage(""), MemoryStorage)

    def test_uses_configured_budget(self, monkeypatch):
        monkeypatch.setattr(rate_limit.settings, "rate_limit_max", 7)
        monkeypatch.setattr(rate_limit.settings, "rate_limit_window_seconds", 30)

        limiter = build_rate_limiter()

        assert (limiter.max_requests, limiter.window_seconds) == (7, 30)
        assert isinstance(limiter.storage, MemoryStorage)
