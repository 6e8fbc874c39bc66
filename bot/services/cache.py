from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Protocol

import redis.asyncio as redis

from core.config import RedisConfig


class CacheBackend(Protocol):
    async def get(self, key: str) -> Any: ...
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def incr(self, key: str, ttl: int | None = None) -> int: ...
    async def close(self) -> None: ...


@dataclass(slots=True)
class _MemoryValue:
    value: Any
    expires_at: float | None


class MemoryCache(CacheBackend):
    def __init__(self, namespace: str = "relay") -> None:
        self.namespace = namespace
        self._store: dict[str, _MemoryValue] = {}
        self._lock = asyncio.Lock()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @staticmethod
    def _is_expired(entry: _MemoryValue, now: float) -> bool:
        return entry.expires_at is not None and now >= entry.expires_at

    async def get(self, key: str) -> Any:
        async with self._lock:
            full_key = self._key(key)
            entry = self._store.get(full_key)
            if entry is None:
                return None
            if self._is_expired(entry, time.monotonic()):
                del self._store[full_key]
                return None
            return entry.value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        async with self._lock:
            expires_at = time.monotonic() + ttl if ttl else None
            self._store[self._key(key)] = _MemoryValue(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(self._key(key), None)

    async def incr(self, key: str, ttl: int | None = None) -> int:
        """Increment a counter; the TTL starts with the first increment."""
        async with self._lock:
            full_key = self._key(key)
            now = time.monotonic()
            entry = self._store.get(full_key)
            if entry is None or self._is_expired(entry, now):
                self._store[full_key] = _MemoryValue(value=1, expires_at=now + ttl if ttl else None)
                return 1
            entry.value = int(entry.value) + 1
            return entry.value

    async def close(self) -> None:
        self._store.clear()


class RedisCache(CacheBackend):
    def __init__(self, url: str, namespace: str = "relay") -> None:
        self.namespace = namespace
        self._client = redis.from_url(url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self._client.set(self._key(key), value, ex=ttl or None)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def incr(self, key: str, ttl: int | None = None) -> int:
        """Increment a counter; the TTL starts with the first increment."""
        full_key = self._key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            if ttl:
                pipe.set(full_key, 0, ex=ttl, nx=True)
            pipe.incr(full_key)
            result = await pipe.execute()
        return int(result[-1])

    async def close(self) -> None:
        await self._client.aclose()


async def build_cache(config: RedisConfig) -> CacheBackend:
    if config.enabled:
        return RedisCache(config.url)
    return MemoryCache()
