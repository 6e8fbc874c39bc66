from __future__ import annotations

import asyncio

import pytest

from database.models import Messenger, UserRef
from services.cache import MemoryCache
from utils.rate_limit import DistributedRateLimiter


@pytest.mark.asyncio
async def test_rate_limiter_blocks_after_limit() -> None:
    cache = MemoryCache()
    limiter = DistributedRateLimiter(cache)

    result1 = await limiter.hit("k1", limit=2, window_seconds=1)
    result2 = await limiter.hit("k1", limit=2, window_seconds=1)
    result3 = await limiter.hit("k1", limit=2, window_seconds=1)

    assert result1.allowed is True
    assert result2.allowed is True
    assert result3.allowed is False
    assert result3.current == 3


@pytest.mark.asyncio
async def test_rate_limiter_resets_after_window() -> None:
    cache = MemoryCache()
    limiter = DistributedRateLimiter(cache)

    result1 = await limiter.hit("k2", limit=1, window_seconds=1)
    assert result1.allowed is True

    await asyncio.sleep(1.1)
    result2 = await limiter.hit("k2", limit=1, window_seconds=1)
    assert result2.allowed is True


@pytest.mark.asyncio
async def test_inbound_limit_is_per_messenger_identity() -> None:
    limiter = DistributedRateLimiter(MemoryCache())
    web = UserRef(messenger=Messenger.WEB, raw_id="42")
    discord_user = UserRef(messenger=Messenger.DISCORD, raw_id="42")

    assert (await limiter.hit_inbound(web, limit=1)).allowed is True
    assert (await limiter.hit_inbound(web, limit=1)).allowed is False
    assert (await limiter.hit_inbound(discord_user, limit=1)).allowed is True
