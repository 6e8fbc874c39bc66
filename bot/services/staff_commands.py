from __future__ import annotations

import logging
from dataclasses import dataclass

from core.errors import PermissionDeniedError
from database.models import Messenger, TicketRecord, TicketStatus
from services.ticket_service import ResolutionPolicy, TicketReference, TicketService, Transition
from utils.i18n import I18N

LOGGER = logging.getLogger(__name__)


def _warning(transition: Transition) -> str | None:
    failure = transition.thread_failure
    return failure.user_message if failure is not None else None


@dataclass(slots=True)
class StaffCommandEvent:
    """Staff command as delivered by the staff transport, already normalized."""

    actor_id: str
    messenger: Messenger
    is_admin: bool
    reply_text: str | None = None
    thread_id: int | None = None
    category: str | None = None

    @property
    def reference(self) -> TicketReference:
        return TicketReference(reply_text=self.reply_text, thread_id=self.thread_id, category=self.category)


@dataclass(slots=True)
class CommandReply:
    staff_text: str
    ticket: TicketRecord | None = None
    user_text: str | None = None
    warning: str | None = None


class StaffCommandRouter:
    def __init__(self, tickets: TicketService, i18n: I18N) -> None:
        self.tickets = tickets
        self.i18n = i18n

    @staticmethod
    def _require_admin(event: StaffCommandEvent) -> None:
        if not event.is_admin:
            raise PermissionDeniedError()

    def _token(self, ticket: TicketRecord) -> str:
        return self.tickets.codec.encode(ticket.ticket_id)

    def help(self, event: StaffCommandEvent) -> CommandReply:
        key = "help.staff" if event.is_admin else "help.user"
        return CommandReply(staff_text=self.i18n.t(key))

    async def clear(self, event: StaffCommandEvent) -> CommandReply:
        self._require_admin(event)
        count = await self.tickets.close_all(actor_id=event.actor_id)
        return CommandReply(staff_text=self.i18n.t("ticket.all_closed", count=count))

    async def list_open(self, event: StaffCommandEvent) -> CommandReply:
        self._require_admin(event)
        tickets = await self.tickets.list_open(category=event.category)
        if not tickets:
            return CommandReply(staff_text=self.i18n.t("ticket.open_list_empty"))
        lines = [f"{self._token(ticket)} ({ticket.user.messenger.value})" for ticket in tickets]
        return CommandReply(staff_text=f"{self.i18n.t('ticket.open_list_title')}\n\n" + "\n".join(lines))

    async def close(self, event: StaffCommandEvent) -> CommandReply:
        self._require_admin(event)
        ticket = await self.tickets.resolve(event.reference, ResolutionPolicy.CATEGORY_SCOPED)
        if ticket.status is TicketStatus.CLOSED:
            return CommandReply(
                staff_text=self.i18n.t("ticket.already_closed", token=self._token(ticket)),
                ticket=ticket,
            )
        transition = await self.tickets.close(ticket.user, ticket_id=ticket.ticket_id, actor_id=event.actor_id)
        updated = transition.ticket
        staff_text = f"{self.i18n.t('ticket.label')} {self._token(updated)} {self.i18n.t('ticket.closed')}"
        return CommandReply(
            staff_text=staff_text,
            ticket=updated,
            user_text=f"{staff_text}\n\n{self.i18n.t('ticket.closed_user')}",
            warning=_warning(transition),
        )

    async def ban(self, event: StaffCommandEvent) -> CommandReply:
        self._require_admin(event)
        ticket = await self.tickets.resolve(event.reference, ResolutionPolicy.GLOBAL)
        transition = await self.tickets.ban(ticket.user, ticket_id=ticket.ticket_id, actor_id=event.actor_id)
        return CommandReply(
            staff_text=self._about_user(transition.ticket, "ticket.banned"),
            ticket=transition.ticket,
            warning=_warning(transition),
        )

    async def reopen(self, event: StaffCommandEvent) -> CommandReply:
        self._require_admin(event)
        ticket = await self.tickets.resolve(event.reference, ResolutionPolicy.GLOBAL)
        transition = await self.tickets.reopen(ticket.user, ticket_id=ticket.ticket_id, actor_id=event.actor_id)
        return CommandReply(
            staff_text=self._about_user(transition.ticket, "ticket.reopened"),
            ticket=transition.ticket,
            warning=_warning(transition),
        )

    async def unban(self, event: StaffCommandEvent) -> CommandReply:
        self._require_admin(event)
        ticket = await self.tickets.resolve(event.reference, ResolutionPolicy.GLOBAL)
        transition = await self.tickets.unban(ticket.user, ticket_id=ticket.ticket_id, actor_id=event.actor_id)
        return CommandReply(
            staff_text=self._about_user(transition.ticket, "ticket.unbanned"),
            ticket=transition.ticket,
            warning=_warning(transition),
        )

    def _about_user(self, ticket: TicketRecord, status_key: str) -> str:
        return f"{self.i18n.t('ticket.user_with_ticket')} {self._token(ticket)} {self.i18n.t(status_key)}"
