from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite
import asyncpg

from core.errors import StoreUnavailableError

LOGGER = logging.getLogger(__name__)

DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    aiosqlite.Error,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)


@dataclass(slots=True)
class DatabaseDsn:
    driver: str
    value: str


def parse_database_dsn(url: str) -> DatabaseDsn:
    if url.startswith("sqlite:///"):
        return DatabaseDsn(driver="sqlite", value=url.replace("sqlite:///", "", 1))
    if url.startswith("postgresql://") or url.startswith("postgres://"):
        return DatabaseDsn(driver="postgresql", value=url)
    raise ValueError("Unsupported database URL. Use sqlite:/// or postgresql://")


def _qmark_to_dollar(query: str) -> str:
    idx = 1
    out: list[str] = []
    for char in query:
        if char == "?":
            out.append(f"${idx}")
            idx += 1
        else:
            out.append(char)
    return "".join(out)


@asynccontextmanager
async def _store_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except DRIVER_ERRORS as exc:
        LOGGER.error("Store operation failed. operation=%s error=%s", operation, exc)
        raise StoreUnavailableError() from exc


class Transaction:
    """Executor bound to the connection that owns an open transaction."""

    def __init__(self, driver: str, connection: Any) -> None:
        self._driver = driver
        self._conn = connection

    async def execute(self, query: str, params: Sequence[Any] | None = None) -> None:
        params = params or []
        if self._driver == "sqlite":
            await self._conn.execute(query, tuple(params))
            return
        await self._conn.execute(_qmark_to_dollar(query), *params)

    async def fetchone(self, query: str, params: Sequence[Any] | None = None) -> dict[str, Any] | None:
        params = params or []
        if self._driver == "sqlite":
            cursor = await self._conn.execute(query, tuple(params))
            row = await cursor.fetchone()
            await cursor.close()
        else:
            row = await self._conn.fetchrow(_qmark_to_dollar(query), *params)
        return dict(row) if row is not None else None

    async def fetchall(self, query: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        params = params or []
        if self._driver == "sqlite":
            cursor = await self._conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()
        else:
            rows = await self._conn.fetch(_qmark_to_dollar(query), *params)
        return [dict(row) for row in rows]


class Database:
    def __init__(self, url: str, timeout_seconds: int = 30, pool_min_size: int = 2, pool_max_size: int = 10) -> None:
        self._dsn = parse_database_dsn(url)
        self._timeout_seconds = timeout_seconds
        self._pool_min_size = pool_min_size
        self._pool_max_size = pool_max_size
        self._sqlite: aiosqlite.Connection | None = None
        self._pg_pool: asyncpg.Pool | None = None
        self._sqlite_lock = asyncio.Lock()

    @property
    def driver(self) -> str:
        return self._dsn.driver

    async def connect(self) -> None:
        if self.driver == "sqlite":
            sqlite_path = Path(self._dsn.value)
            sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            self._sqlite = await aiosqlite.connect(sqlite_path, isolation_level=None)
            self._sqlite.row_factory = aiosqlite.Row
            await self._sqlite.execute("PRAGMA journal_mode = WAL;")
            await self._sqlite.execute("PRAGMA foreign_keys = ON;")
            LOGGER.info("Connected to SQLite: %s", sqlite_path)
            return
        self._pg_pool = await asyncpg.create_pool(
            dsn=self._dsn.value,
            min_size=self._pool_min_size,
            max_size=self._pool_max_size,
            timeout=self._timeout_seconds,
        )
        LOGGER.info("Connected to PostgreSQL")

    async def close(self) -> None:
        if self._sqlite:
            await self._sqlite.close()
            self._sqlite = None
        if self._pg_pool:
            await self._pg_pool.close()
            self._pg_pool = None

    async def execute(self, query: str, params: Sequence[Any] | None = None) -> None:
        async with self.transaction() as tx:
            await tx.execute(query, params)

    async def fetchone(self, query: str, params: Sequence[Any] | None = None) -> dict[str, Any] | None:
        async with self.transaction() as tx:
            return await tx.fetchone(query, params)

    async def fetchall(self, query: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        async with self.transaction() as tx:
            return await tx.fetchall(query, params)

    async def executescript(self, sql_script: str) -> None:
        async with _store_errors("executescript"):
            if self.driver == "sqlite":
                assert self._sqlite is not None
                async with self._sqlite_lock:
                    await self._sqlite.executescript(sql_script)
                return

            assert self._pg_pool is not None
            async with self._pg_pool.acquire() as conn:
                await conn.execute(sql_script)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Run the enclosed statements atomically on one connection.

        Driver failures surface as ``StoreUnavailableError`` after rollback.
        """
        async with _store_errors("transaction"):
            if self.driver == "sqlite":
                assert self._sqlite is not None
                async with self._sqlite_lock:
                    await self._sqlite.execute("BEGIN IMMEDIATE")
                    try:
                        yield Transaction("sqlite", self._sqlite)
                    except BaseException:
                        if self._sqlite.in_transaction:
                            await self._sqlite.execute("ROLLBACK")
                        raise
                    await self._sqlite.execute("COMMIT")
                return

            assert self._pg_pool is not None
            async with self._pg_pool.acquire() as conn:
                async with conn.transaction():
                    yield Transaction("postgresql", conn)
