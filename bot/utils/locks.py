from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class TicketLocks:
    """Per-user locks plus an exclusive sweep mode.

    ``for_user`` serializes transitions for one user while different users
    proceed in parallel. ``exclusive`` drains in-flight user transitions and
    holds new ones back until the sweep is done.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}
        self._gate = asyncio.Condition()
        self._active = 0
        self._sweeping = False

    @property
    def active(self) -> int:
        return self._active

    @property
    def tracked_keys(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def for_user(self, key: Hashable) -> AsyncIterator[None]:
        async with self._gate:
            await self._gate.wait_for(lambda: not self._sweeping)
            self._active += 1
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]
            async with self._gate:
                self._active -= 1
                self._gate.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._gate:
            await self._gate.wait_for(lambda: not self._sweeping)
            self._sweeping = True
            try:
                await self._gate.wait_for(lambda: self._active == 0)
            except BaseException:
                self._sweeping = False
                self._gate.notify_all()
                raise
        try:
            yield
        finally:
            async with self._gate:
                self._sweeping = False
                self._gate.notify_all()
