from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from core.config import AppConfig
from core.errors import BotError, InvalidTransitionError, ThreadSyncFailedError, TicketNotFoundError
from database.models import TicketRecord, TicketStatus, UserRef
from database.repositories import EventRepository, TicketRepository
from services.thread_sync import ThreadSynchronizer
from services.ticket_index import TicketIndex
from utils.locks import TicketLocks
from utils.ticket_codec import MAX_TICKET_ID, TicketCodec

LOGGER = logging.getLogger(__name__)


def _log_context(ticket: TicketRecord, event_type: str) -> dict[str, Any]:
    return {
        "ticket_id": ticket.ticket_id,
        "messenger": ticket.user.messenger.value,
        "user_id": ticket.user.raw_id,
        "event_type": event_type,
    }


class ResolutionPolicy(StrEnum):
    # close only matches tickets in the staff channel's category
    CATEGORY_SCOPED = "category_scoped"
    # ban, unban and reopen match any category
    GLOBAL = "global"


@dataclass(slots=True)
class TicketReference:
    reply_text: str | None = None
    thread_id: int | None = None
    category: str | None = None


@dataclass(slots=True)
class Transition:
    """Committed ticket state plus the staff thread failure, if the mirror call failed."""

    ticket: TicketRecord
    thread_failure: ThreadSyncFailedError | None = None


@dataclass(slots=True)
class TicketServiceDeps:
    ticket_repo: TicketRepository
    event_repo: EventRepository
    index: TicketIndex
    locks: TicketLocks
    codec: TicketCodec
    thread_sync: ThreadSynchronizer


class TicketService:
    """Ticket lifecycle state machine and the only writer of ticket status.

    Each transition holds the user's lock only while the store write is
    committed; thread sync and event logging run after the lock is released.
    The index is updated strictly after the store confirmed the write.
    """

    def __init__(self, config: AppConfig, deps: TicketServiceDeps) -> None:
        self.config = config
        self.deps = deps

    @property
    def index(self) -> TicketIndex:
        return self.deps.index

    @property
    def codec(self) -> TicketCodec:
        return self.deps.codec

    async def open(self, user: UserRef, category: str = "", actor_id: str | None = None) -> TicketRecord:
        created = False
        async with self.deps.locks.for_user(user):
            ticket = await self.deps.ticket_repo.find_open_by_user(user)
            if ticket is None:
                await self._reject_banned(user)
                ticket = TicketRecord(ticket_id=0, user=user, category=category, status=TicketStatus.OPEN)
                await self.deps.ticket_repo.create(ticket)
                created = True
                LOGGER.info(
                    "Ticket opened. ticket=%s user=%s category=%s",
                    ticket.ticket_id,
                    user,
                    category,
                    extra=_log_context(ticket, "open"),
                )
            self.index.set(user, ticket)

        if created:
            await self._record(ticket, actor_id or str(user), "open", {"category": category})
            ticket = await self.deps.thread_sync.on_open(ticket, title=self._thread_title(ticket))
        return ticket

    async def close(self, user: UserRef, ticket_id: int | None = None, actor_id: str | None = None) -> Transition:
        async with self.deps.locks.for_user(user):
            ticket = await self._target(user, ticket_id)
            if ticket.status is TicketStatus.CLOSED:
                self._forget(ticket)
                return Transition(ticket)
            if ticket.status is TicketStatus.BANNED:
                raise InvalidTransitionError("Banned tickets cannot be closed; unban the ticket instead.")
            updated = await self._write_status(ticket, TicketStatus.CLOSED)
            self._forget(updated)
            LOGGER.info(
                "Ticket closed. ticket=%s user=%s", updated.ticket_id, user, extra=_log_context(updated, "close")
            )

        await self._record(updated, actor_id, "close")
        return Transition(updated, await self.deps.thread_sync.on_close(updated))

    async def reopen(self, user: UserRef, ticket_id: int | None = None, actor_id: str | None = None) -> Transition:
        async with self.deps.locks.for_user(user):
            ticket = await self._target(user, ticket_id)
            if ticket.status is TicketStatus.BANNED:
                raise InvalidTransitionError("Ticket is banned; unban it before reopening.")
            if ticket.status is TicketStatus.OPEN:
                self.index.set(user, ticket)
                return Transition(ticket)
            await self._reject_banned(user)
            current_open = await self.deps.ticket_repo.find_open_by_user(user)
            if current_open is not None and current_open.ticket_id != ticket.ticket_id:
                raise InvalidTransitionError(
                    f"User already has the open ticket {self.codec.encode(current_open.ticket_id)}."
                )
            updated = await self._write_status(ticket, TicketStatus.OPEN)
            self.index.set(user, updated)
            LOGGER.info(
                "Ticket reopened. ticket=%s user=%s", updated.ticket_id, user, extra=_log_context(updated, "reopen")
            )

        await self._record(updated, actor_id, "reopen")
        return Transition(updated, await self.deps.thread_sync.on_reopen(updated))

    async def ban(self, user: UserRef, ticket_id: int | None = None, actor_id: str | None = None) -> Transition:
        async with self.deps.locks.for_user(user):
            ticket = await self._target(user, ticket_id)
            if ticket.status is TicketStatus.BANNED:
                return Transition(ticket)
            if ticket.status is not TicketStatus.OPEN:
                current_open = await self.deps.ticket_repo.find_open_by_user(user)
                if current_open is not None:
                    raise InvalidTransitionError(
                        f"User has the open ticket {self.codec.encode(current_open.ticket_id)}; ban that one."
                    )
            previous = ticket.status
            updated = await self._write_status(ticket, TicketStatus.BANNED)
            self._forget(updated)
            LOGGER.info(
                "Ticket banned. ticket=%s user=%s previous=%s",
                updated.ticket_id,
                user,
                previous,
                extra=_log_context(updated, "ban"),
            )

        await self._record(updated, actor_id, "ban", {"previous": previous.value})
        if previous is TicketStatus.OPEN:
            return Transition(updated, await self.deps.thread_sync.on_close(updated))
        return Transition(updated)

    async def unban(self, user: UserRef, ticket_id: int | None = None, actor_id: str | None = None) -> Transition:
        async with self.deps.locks.for_user(user):
            ticket = await self._target(user, ticket_id)
            if ticket.status is TicketStatus.CLOSED:
                return Transition(ticket)
            if ticket.status is TicketStatus.OPEN:
                raise InvalidTransitionError("Ticket is not banned.")
            updated = await self._write_status(ticket, TicketStatus.CLOSED)
            self._forget(updated)
            LOGGER.info(
                "Ticket unbanned. ticket=%s user=%s", updated.ticket_id, user, extra=_log_context(updated, "unban")
            )

        await self._record(updated, actor_id, "unban")
        return Transition(updated)

    async def close_all(self, actor_id: str | None = None) -> int:
        async with self.deps.locks.exclusive():
            closed = await self.deps.ticket_repo.close_all_open()
            self.index.clear_all()
        LOGGER.info("Closed all open tickets. count=%s actor=%s", len(closed), actor_id)
        for ticket in closed:
            await self._record(ticket, actor_id, "close_all")
        return len(closed)

    async def find_by_id(self, ticket_id: int, category: str | None = None) -> TicketRecord:
        if not 0 < ticket_id <= MAX_TICKET_ID:
            raise TicketNotFoundError()
        ticket = await self.deps.ticket_repo.find_by_id(ticket_id, category)
        if ticket is None:
            raise TicketNotFoundError()
        self._remember(ticket)
        return ticket

    async def find_by_user_id(self, user: UserRef) -> TicketRecord:
        cached_id = self.index.get_ticket_id(user)
        if cached_id is not None:
            cached = await self.deps.ticket_repo.find_by_id(cached_id)
            if cached is not None and cached.user == user and cached.is_open:
                return cached
            self.index.clear(user)
        ticket = await self.deps.ticket_repo.find_open_by_user(user)
        if ticket is None:
            ticket = await self.deps.ticket_repo.find_latest_by_user(user)
        if ticket is None:
            raise TicketNotFoundError()
        self._remember(ticket)
        return ticket

    async def find_by_thread_id(self, thread_id: int) -> TicketRecord:
        ticket = await self.deps.ticket_repo.find_by_thread_id(thread_id)
        if ticket is None:
            raise TicketNotFoundError()
        self._remember(ticket)
        return ticket

    async def resolve(self, reference: TicketReference, policy: ResolutionPolicy) -> TicketRecord:
        """Find the ticket a staff message refers to.

        The thread id wins when threads are in use. Otherwise the first
        ticket token in the replied-to text is looked up. Nothing matched
        means ``TicketNotFoundError``.
        """
        if self.deps.thread_sync.enabled and reference.thread_id is not None:
            ticket = await self.deps.ticket_repo.find_by_thread_id(reference.thread_id)
            if ticket is not None:
                return ticket

        ticket_id = self.codec.decode(reference.reply_text)
        if ticket_id is not None:
            category = reference.category if policy is ResolutionPolicy.CATEGORY_SCOPED else None
            ticket = await self.deps.ticket_repo.find_by_id(ticket_id, category)
            if ticket is not None:
                return ticket

        raise TicketNotFoundError()

    async def list_open(self, category: str | None = None, limit: int = 200) -> list[TicketRecord]:
        return await self.deps.ticket_repo.list_open(category=category, limit=limit)

    async def _target(self, user: UserRef, ticket_id: int | None) -> TicketRecord:
        if ticket_id is not None:
            if not 0 < ticket_id <= MAX_TICKET_ID:
                raise TicketNotFoundError()
            ticket = await self.deps.ticket_repo.find_by_id(ticket_id)
            if ticket is None or ticket.user != user:
                raise TicketNotFoundError()
            return ticket
        ticket = await self.deps.ticket_repo.find_open_by_user(user)
        if ticket is None:
            ticket = await self.deps.ticket_repo.find_latest_by_user(user)
        if ticket is None:
            raise TicketNotFoundError()
        return ticket

    async def _reject_banned(self, user: UserRef) -> None:
        if await self.deps.ticket_repo.has_banned(user):
            raise InvalidTransitionError("This user is banned; unban their ticket first.")

    async def _write_status(self, ticket: TicketRecord, status: TicketStatus) -> TicketRecord:
        updated = await self.deps.ticket_repo.update_status(ticket.ticket_id, status, expected=ticket.status)
        if updated is not None:
            return updated
        current = await self.deps.ticket_repo.find_by_id(ticket.ticket_id)
        if current is None:
            raise TicketNotFoundError()
        if current.status is status:
            return current
        raise InvalidTransitionError(
            f"Ticket {self.codec.encode(ticket.ticket_id)} changed to {current.status.value} concurrently."
        )

    def _remember(self, ticket: TicketRecord) -> None:
        if ticket.is_open:
            self.index.set(ticket.user, ticket)

    def _forget(self, ticket: TicketRecord) -> None:
        if self.index.get_ticket_id(ticket.user) in (None, ticket.ticket_id):
            self.index.clear(ticket.user)

    def _thread_title(self, ticket: TicketRecord) -> str:
        title = f"{self.codec.encode(ticket.ticket_id)} {ticket.user.messenger.value}"
        if ticket.category:
            title = f"{title} [{ticket.category}]"
        return title[:100]

    async def _record(
        self,
        ticket: TicketRecord,
        actor_id: str | None,
        event_type: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        try:
            await self.deps.event_repo.log(
                ticket_id=ticket.ticket_id,
                actor_id=actor_id,
                event_type=event_type,
                payload=payload,
            )
        except BotError:
            LOGGER.error("Could not record ticket event. ticket=%s event=%s", ticket.ticket_id, event_type)
