from __future__ import annotations

from dataclasses import dataclass

from database.models import UserRef
from services.cache import CacheBackend


@dataclass(slots=True)
class RateLimitResult:
    allowed: bool
    current: int
    limit: int


class DistributedRateLimiter:
    """Fixed-window counter on top of the shared cache backend."""

    def __init__(self, cache: CacheBackend) -> None:
        self.cache = cache

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        current = await self.cache.incr(key, ttl=window_seconds)
        return RateLimitResult(allowed=current <= limit, current=current, limit=limit)

    async def hit_inbound(self, user: UserRef, *, limit: int, window_seconds: int = 10) -> RateLimitResult:
        return await self.hit(
            f"inbound:{user.messenger.value}:{user.raw_id}",
            limit=limit,
            window_seconds=window_seconds,
        )
