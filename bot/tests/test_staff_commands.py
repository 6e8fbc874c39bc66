from __future__ import annotations

import pytest

from core.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    ThreadSyncFailedError,
    TicketNotFoundError,
)
from database.models import Messenger, TicketStatus, UserRef
from services.staff_commands import StaffCommandEvent, StaffCommandRouter

USER = UserRef(messenger=Messenger.WEB, raw_id="42")


def _event(reply_text: str | None = None, *, is_admin: bool = True, category: str | None = None) -> StaffCommandEvent:
    return StaffCommandEvent(
        actor_id="staff-1",
        messenger=Messenger.DISCORD,
        is_admin=is_admin,
        reply_text=reply_text,
        category=category,
    )


def _notification(service, ticket_id: int) -> str:
    return f"Ticket {service.codec.reference(ticket_id)} web:42\n\nhello"


@pytest.mark.asyncio
async def test_close_replies_to_staff_and_user(make_service, i18n) -> None:
    service = make_service()
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER)

    reply = await router.close(_event(_notification(service, ticket.ticket_id)))

    assert reply.staff_text == "Ticket #T000001 closed"
    assert reply.ticket is not None and reply.ticket.status is TicketStatus.CLOSED
    assert reply.user_text is not None
    assert reply.user_text.startswith("Ticket #T000001 closed\n\n")


@pytest.mark.asyncio
async def test_close_of_closed_ticket_reports_it(make_service, i18n) -> None:
    service = make_service()
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER)
    await service.close(USER)

    reply = await router.close(_event(_notification(service, ticket.ticket_id)))

    assert reply.staff_text == "#T000001 is already closed."
    assert reply.user_text is None


@pytest.mark.asyncio
async def test_close_is_scoped_to_the_channel_category(make_service, i18n) -> None:
    service = make_service()
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER, category="billing")

    with pytest.raises(TicketNotFoundError):
        await router.close(_event(_notification(service, ticket.ticket_id), category="sales"))

    reply = await router.ban(_event(_notification(service, ticket.ticket_id), category="sales"))
    assert reply.staff_text == "User with ticket #T000001 banned"


@pytest.mark.asyncio
async def test_ban_reopen_unban_sequence(make_service, i18n) -> None:
    service = make_service()
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER)
    reply_text = _notification(service, ticket.ticket_id)

    assert (await router.ban(_event(reply_text))).staff_text == "User with ticket #T000001 banned"
    with pytest.raises(InvalidTransitionError):
        await router.reopen(_event(reply_text))
    assert (await router.unban(_event(reply_text))).staff_text == "User with ticket #T000001 unbanned"
    assert (await router.reopen(_event(reply_text))).staff_text == "User with ticket #T000001 reopened"
    assert (await service.find_by_id(ticket.ticket_id)).status is TicketStatus.OPEN


@pytest.mark.asyncio
async def test_clear_and_open_list(make_service, i18n) -> None:
    service = make_service()
    router = StaffCommandRouter(service, i18n)
    await service.open(USER)
    await service.open(UserRef(messenger=Messenger.DISCORD, raw_id="77"))

    listing = await router.list_open(_event())
    assert "#T000001 (web)" in listing.staff_text
    assert "#T000002 (discord)" in listing.staff_text

    cleared = await router.clear(_event())
    assert cleared.staff_text == "All tickets closed (2)."
    assert (await router.list_open(_event())).staff_text == "No open tickets."


@pytest.mark.asyncio
async def test_commands_require_admin(make_service, i18n) -> None:
    service = make_service()
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER)

    with pytest.raises(PermissionDeniedError):
        await router.close(_event(_notification(service, ticket.ticket_id), is_admin=False))
    with pytest.raises(PermissionDeniedError):
        await router.clear(_event(is_admin=False))
    assert (await service.find_by_id(ticket.ticket_id)).is_open


@pytest.mark.asyncio
async def test_command_without_reference_is_not_found(make_service, i18n) -> None:
    router = StaffCommandRouter(make_service(), i18n)

    with pytest.raises(TicketNotFoundError):
        await router.close(_event("just a message"))


@pytest.mark.asyncio
async def test_help_depends_on_role(make_service, i18n) -> None:
    router = StaffCommandRouter(make_service(), i18n)

    assert router.help(_event()).staff_text == i18n.t("help.staff")
    assert router.help(_event(is_admin=False)).staff_text == i18n.t("help.user")


@pytest.mark.asyncio
async def test_close_warns_staff_when_the_thread_is_out_of_sync(make_service, i18n, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER)
    thread_gateway.close_group.side_effect = RuntimeError("missing permissions")

    reply = await router.close(_event(_notification(service, ticket.ticket_id)))

    assert reply.ticket is not None and reply.ticket.status is TicketStatus.CLOSED
    assert reply.warning == ThreadSyncFailedError().user_message


@pytest.mark.asyncio
async def test_reopen_without_thread_trouble_has_no_warning(make_service, i18n, thread_gateway) -> None:
    service = make_service(gateway=thread_gateway, threads=True)
    router = StaffCommandRouter(service, i18n)
    ticket = await service.open(USER)
    await service.close(USER)

    reply = await router.reopen(_event(_notification(service, ticket.ticket_id)))

    assert reply.warning is None
    thread_gateway.reopen_group.assert_awaited_once()
