from __future__ import annotations

import pytest

from core.errors import ThreadSyncFailedError, TicketNotFoundError
from database.models import Messenger, TicketStatus, UserRef
from services.ticket_service import ResolutionPolicy, TicketReference

STAFF_CHAT_ID = 555
USER = UserRef(messenger=Messenger.TELEGRAM, raw_id="1001")


@pytest.mark.asyncio
async def test_open_creates_thread_once(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)

    ticket = await service.open(USER, category="billing")
    again = await service.open(USER)

    assert ticket.thread_id == 9001
    assert again.thread_id == 9001
    thread_gateway.open_group.assert_awaited_once()
    args = thread_gateway.open_group.await_args.args
    assert args[0] == STAFF_CHAT_ID
    assert args[1].startswith("#T000001")


@pytest.mark.asyncio
async def test_close_and_reopen_follow_the_thread(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    ticket = await service.open(USER)

    await service.close(USER)
    thread_gateway.close_group.assert_awaited_once_with(STAFF_CHAT_ID, 9001)

    reopened = (await service.reopen(USER, ticket_id=ticket.ticket_id)).ticket
    thread_gateway.reopen_group.assert_awaited_once_with(STAFF_CHAT_ID, 9001)
    assert reopened.thread_id == 9001


@pytest.mark.asyncio
async def test_ban_of_open_ticket_closes_its_thread(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    await service.open(USER)

    await service.ban(USER)

    thread_gateway.close_group.assert_awaited_once_with(STAFF_CHAT_ID, 9001)


@pytest.mark.asyncio
async def test_thread_failure_does_not_roll_back_close(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    ticket = await service.open(USER)
    thread_gateway.close_group.side_effect = RuntimeError("discord is down")

    transition = await service.close(USER)
    closed = transition.ticket

    assert closed.status is TicketStatus.CLOSED
    stored = await service.find_by_id(ticket.ticket_id)
    assert stored.status is TicketStatus.CLOSED
    events = await service.deps.event_repo.list_for_ticket(ticket.ticket_id)
    failures = [event for event in events if event.event_type == "thread_sync_failed"]
    assert isinstance(transition.thread_failure, ThreadSyncFailedError)
    assert len(failures) == 1
    assert failures[0].payload["action"] == "close"


@pytest.mark.asyncio
async def test_synchronizer_returns_failure(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    ticket = await service.open(USER)
    thread_gateway.reopen_group.side_effect = OSError("timeout")

    failure = await service.deps.thread_sync.on_reopen(ticket)

    assert isinstance(failure, ThreadSyncFailedError)
    assert isinstance(failure.__cause__, OSError)


@pytest.mark.asyncio
async def test_failed_thread_creation_leaves_ticket_open(make_service, thread_gateway) -> None:
    thread_gateway.open_group.side_effect = RuntimeError("forum missing")
    service = make_service(gateway=thread_gateway, threads=True)

    ticket = await service.open(USER)

    assert ticket.status is TicketStatus.OPEN
    assert ticket.thread_id is None
    thread_gateway.close_group.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_prefers_thread_id(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    first = await service.open(USER)
    second = await service.open(UserRef(messenger=Messenger.WEB, raw_id="2"))

    reference = TicketReference(
        reply_text=f"Ticket {service.codec.reference(second.ticket_id)}",
        thread_id=first.thread_id,
    )
    found = await service.resolve(reference, ResolutionPolicy.GLOBAL)

    assert found.ticket_id == first.ticket_id


@pytest.mark.asyncio
async def test_thread_id_ignored_when_threads_disabled(make_service, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=False)
    await service.open(USER)

    with pytest.raises(TicketNotFoundError):
        await service.resolve(TicketReference(thread_id=9001), ResolutionPolicy.GLOBAL)

    thread_gateway.open_group.assert_not_awaited()
