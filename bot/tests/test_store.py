from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import StoreUnavailableError
from database.migrations.runner import run_migrations
from database.models import Messenger, TicketStatus, UserRef

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "database" / "migrations"
USER = UserRef(messenger=Messenger.DISCORD, raw_id="314")


@pytest.mark.asyncio
async def test_migrations_are_applied_once(database) -> None:
    assert await run_migrations(database, MIGRATIONS_DIR) == []


@pytest.mark.asyncio
async def test_one_open_ticket_per_user_is_enforced_by_the_store(database, make_service) -> None:
    service = make_service()
    await service.open(USER)

    with pytest.raises(StoreUnavailableError):
        await database.execute(
            "INSERT INTO tickets(ticket_id, user_id, messenger, status) VALUES (?, ?, ?, 'open');",
            [99, USER.raw_id, USER.messenger.value],
        )


@pytest.mark.asyncio
async def test_failed_write_leaves_index_untouched(database, make_service) -> None:
    service = make_service()
    await database.executescript("DROP TABLE ticket_events; DROP TABLE tickets;")

    with pytest.raises(StoreUnavailableError):
        await service.open(USER)

    assert USER not in service.index


@pytest.mark.asyncio
async def test_event_log_failure_does_not_fail_the_transition(database, make_service) -> None:
    service = make_service()
    await database.executescript("DROP TABLE ticket_events;")

    ticket = await service.open(USER)

    assert ticket.status is TicketStatus.OPEN
    assert service.index.get_ticket_id(USER) == ticket.ticket_id


@pytest.mark.asyncio
async def test_counter_tracks_allocated_ids(database, make_service) -> None:
    service = make_service()
    await service.open(USER)
    counter = await database.fetchone("SELECT value FROM ticket_counter WHERE id = 1;")

    assert counter is not None and int(counter["value"]) == 1


@pytest.mark.asyncio
async def test_missing_counter_row_is_a_store_failure(database, make_service) -> None:
    service = make_service()
    await database.execute("DELETE FROM ticket_counter;")

    with pytest.raises(StoreUnavailableError):
        await service.open(USER)

    assert USER not in service.index
    assert await service.list_open() == []
