"""Fixed-window rate limiting for the read proxy.

Counting is done by the ``limits`` package (the engine behind slowapi).
Counters live in process memory by default, or in Redis when
ETF_REDIS_URL is set so the limit holds across processes.
"""

import logging
import math
import time

from limits import RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

from etf_backend.config import settings
from etf_backend.errors import RateLimited

logger = logging.getLogger(__name__)

NAMESPACE = "proxy"


class RateLimiter:
    """At most ``max_requests`` per identity per fixed window."""

    def __init__(self, storage: Storage, max_requests: int, window_seconds: int):
        self.storage = storage
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._strategy = FixedWindowRateLimiter(storage)
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)

    async def check(self, identity: str):
        """Count one request for ``identity``; raise RateLimited once over budget."""
        if await self._strategy.hit(self._item, NAMESPACE, identity):
            return
        stats = await self._strategy.get_window_stats(self._item, NAMESPACE, identity)
        retry_after = min(self.window_seconds, max(1, math.ceil(stats.reset_time - time.time())))
        logger.info(f"Rate limit exceeded ({self.max_requests}/{self.window_seconds}s)")
        raise RateLimited(
            f"Rate limit exceeded. Try again in {retry_after} seconds.",
            retry_after=retry_after,
        )


def build_storage(redis_url: str = "") -> Storage:
    """Redis-backed counters when a URL is given, otherwise in-process memory."""
    if redis_url:
        logger.info("Rate limiter using Redis counters")
        return storage_from_string(f"async+{redis_url}")
    return MemoryStorage()


def build_rate_limiter() -> RateLimiter:
    """Limiter from settings."""
    return RateLimiter(
        build_storage(settings.redis_url),
        settings.rate_limit_max,
        settings.rate_limit_window_seconds,
    )
