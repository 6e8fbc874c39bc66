from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.cache import RedisCache


class _Pipeline:
    def __init__(self, results: list[object]) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []
        self.results = results

    async def __aenter__(self) -> _Pipeline:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    def set(self, *args: object, **kwargs: object) -> None:
        self.calls.append(("set", args, kwargs))

    def incr(self, *args: object, **kwargs: object) -> None:
        self.calls.append(("incr", args, kwargs))

    async def execute(self) -> list[object]:
        return self.results


@pytest.mark.asyncio
async def test_redis_incr_sets_expiry_in_the_same_transaction() -> None:
    cache = RedisCache("redis://localhost:6379/0", namespace="test")
    pipeline = _Pipeline([True, 1])
    cache._client = MagicMock()
    cache._client.pipeline = MagicMock(return_value=pipeline)
    cache._client.aclose = AsyncMock()

    assert await cache.incr("inbound:web:42", ttl=10) == 1

    cache._client.pipeline.assert_called_once_with(transaction=True)
    assert pipeline.calls == [
        ("set", ("test:inbound:web:42", 0), {"ex": 10, "nx": True}),
        ("incr", ("test:inbound:web:42",), {}),
    ]
    await cache.close()


@pytest.mark.asyncio
async def test_redis_incr_without_ttl_only_increments() -> None:
    cache = RedisCache("redis://localhost:6379/0", namespace="test")
    pipeline = _Pipeline([4])
    cache._client = MagicMock()
    cache._client.pipeline = MagicMock(return_value=pipeline)

    assert await cache.incr("k") == 4
    assert [call[0] for call in pipeline.calls] == ["incr"]
