"""
Per-owner attempt counter for share creation.

Backed by the `limits` library (the storage layer slowapi uses), so the
counter lives in memory for a single worker or in Redis/Memcached when
RATE_LIMIT_STORAGE_URI points there. `hit` is a single atomic
check-and-increment on the storage side.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from limits import RateLimitItemPerMinute
from limits.storage import storage_from_string
from limits.aio.strategies import FixedWindowRateLimiter

from app.config import get_settings

logger = logging.getLogger("app.rate_limit")


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0
    remaining: int = 0


class AttemptCounter(Protocol):
    async def hit(self, key: str) -> RateLimitDecision: ...

    async def reset(self, key: str) -> None: ...


class FixedWindowCounter:
    """
    Fixed window of `max_attempts` per `window_minutes`, keyed by caller-supplied key.
    """

    def __init__(
        self,
        max_attempts: int,
        window_minutes: int,
        storage_uri: str = "memory://",
    ):
        self.item = RateLimitItemPerMinute(max_attempts, window_minutes)
        # limits' asyncio storages use the "async+" scheme prefix
        uri = storage_uri if storage_uri.startswith("async+") else f"async+{storage_uri}"
        self.storage = storage_from_string(uri)
        self.limiter = FixedWindowRateLimiter(self.storage)

    async def hit(self, key: str) -> RateLimitDecision:
        allowed = await self.limiter.hit(self.item, key)
        stats = await self.limiter.get_window_stats(self.item, key)
        retry_after = max(1, int(stats.reset_time - time.time())) if not allowed else 0
        return RateLimitDecision(allowed=allowed, retry_after=retry_after, remaining=stats.remaining)

    async def reset(self, key: str) -> None:
        await self.limiter.clear(self.item, key)


_share_creation_counter: Optional[FixedWindowCounter] = None


def get_share_creation_counter() -> FixedWindowCounter:
    """Process-wide counter configured from settings."""
    global _share_creation_counter
    if _share_creation_counter is None:
        settings = get_settings()
        _share_creation_counter = FixedWindowCounter(
            max_attempts=settings.share_creation_max_attempts,
            window_minutes=settings.share_creation_window_minutes,
            storage_uri=settings.rate_limit_storage_uri,
        )
        logger.info(
            "Share creation limiter ready",
            extra={
                "event": "rate_limit",
                "max_attempts": settings.share_creation_max_attempts,
                "window_minutes": settings.share_creation_window_minutes,
            },
        )
    return _share_creation_counter
