from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from core.config import AppConfig, DiscordConfig, StaffChatConfig
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import EventRepository, TicketRepository
from services.thread_sync import ThreadSynchronizer
from services.ticket_index import TicketIndex
from services.ticket_service import TicketService, TicketServiceDeps
from utils.i18n import I18N
from utils.locks import TicketLocks
from utils.ticket_codec import TicketCodec

BOT_DIR = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = BOT_DIR / "database" / "migrations"
LOCALES_DIR = BOT_DIR / "config" / "locales"

STAFF_CHAT_ID = 555


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await db.connect()
    await run_migrations(db, MIGRATIONS_DIR)
    yield db
    await db.close()


@pytest.fixture
def i18n() -> I18N:
    return I18N(LOCALES_DIR, "en-US")


@pytest.fixture
def thread_gateway() -> AsyncMock:
    gateway = AsyncMock()
    gateway.open_group = AsyncMock(side_effect=[9001, 9002, 9003, 9004])
    gateway.close_group = AsyncMock(return_value=None)
    gateway.reopen_group = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def make_service(database: Database, i18n: I18N) -> Callable[..., TicketService]:
    def _make(gateway: AsyncMock | None = None, threads: bool = False) -> TicketService:
        config = AppConfig(
            discord=DiscordConfig(token="x"),
            staff_chat=StaffChatConfig(chat_id=STAFF_CHAT_ID, is_forum=threads),
        )
        ticket_repo = TicketRepository(database)
        event_repo = EventRepository(database)
        deps = TicketServiceDeps(
            ticket_repo=ticket_repo,
            event_repo=event_repo,
            index=TicketIndex(),
            locks=TicketLocks(),
            codec=TicketCodec(i18n.t("ticket.marker")),
            thread_sync=ThreadSynchronizer(
                gateway=gateway,
                staff_chat_id=STAFF_CHAT_ID,
                enabled=threads,
                ticket_repo=ticket_repo,
                event_repo=event_repo,
            ),
        )
        return TicketService(config, deps)

    return _make
