from __future__ import annotations

import logging

import discord

from core.config import AppConfig
from core.errors import InvalidTransitionError
from database.models import TicketRecord, UserRef
from services.gateways import MessengerRouter, StaffChatGateway
from services.ticket_service import ResolutionPolicy, TicketReference, TicketService
from utils.i18n import I18N
from utils.rate_limit import DistributedRateLimiter

LOGGER = logging.getLogger(__name__)

RECEIVED_EVENT = "received"


class RelayService:
    """Moves conversation text between end users and the staff chat."""

    def __init__(
        self,
        config: AppConfig,
        tickets: TicketService,
        staff_chat: StaffChatGateway | None,
        messengers: MessengerRouter,
        rate_limiter: DistributedRateLimiter,
        i18n: I18N,
    ) -> None:
        self.config = config
        self.tickets = tickets
        self.staff_chat = staff_chat
        self.messengers = messengers
        self.rate_limiter = rate_limiter
        self.i18n = i18n

    async def handle_user_message(self, user: UserRef, text: str, category: str = "") -> TicketRecord | None:
        hit = await self.rate_limiter.hit_inbound(user, limit=self.config.security.inbound_messages_per_10s)
        if not hit.allowed:
            LOGGER.warning("Inbound flood limit hit. user=%s count=%s", user, hit.current)
            return None

        try:
            ticket = await self.tickets.open(user, category=category)
        except InvalidTransitionError:
            LOGGER.info("Dropped message from banned user. user=%s", user)
            return None

        await self.post_to_staff(ticket, self._format_for_staff(ticket, text))

        index = self.tickets.index
        if not index.was_sent(user, RECEIVED_EVENT):
            index.mark_sent(user, RECEIVED_EVENT)
            await self.messengers.send(
                user, self.i18n.t("ticket.received", token=self.tickets.codec.encode(ticket.ticket_id))
            )
        return ticket

    async def handle_staff_reply(self, reference: TicketReference, text: str, actor_id: str) -> TicketRecord:
        ticket = await self.tickets.resolve(reference, ResolutionPolicy.GLOBAL)
        if not ticket.is_open:
            raise InvalidTransitionError(
                self.i18n.t("ticket.not_open", token=self.tickets.codec.encode(ticket.ticket_id))
            )
        delivered = await self.messengers.send(ticket.user, self.i18n.t("relay.staff_reply", text=text))
        LOGGER.info(
            "Relayed staff reply. ticket=%s actor=%s delivered=%s", ticket.ticket_id, actor_id, delivered
        )
        return ticket

    async def post_to_staff(self, ticket: TicketRecord, text: str) -> bool:
        chat_id = self.config.staff_chat.chat_id
        if self.staff_chat is None or chat_id is None:
            LOGGER.warning("Staff chat is not configured; ticket=%s not relayed", ticket.ticket_id)
            return False
        thread_id = ticket.thread_id if self.tickets.deps.thread_sync.enabled else None
        try:
            await self.staff_chat.post(chat_id, thread_id, text)
        except (discord.HTTPException, TypeError) as exc:
            LOGGER.warning("Posting to staff chat failed. ticket=%s error=%s", ticket.ticket_id, exc)
            return False
        return True

    def _format_for_staff(self, ticket: TicketRecord, text: str) -> str:
        return self.i18n.t(
            "relay.staff_message",
            label=self.i18n.t("ticket.label"),
            reference=self.tickets.codec.reference(ticket.ticket_id),
            user=str(ticket.user),
            text=text,
        )
