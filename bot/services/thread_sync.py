from __future__ import annotations

import logging
from typing import Protocol

from core.errors import BotError, ThreadSyncFailedError
from database.models import TicketRecord
from database.repositories import EventRepository, TicketRepository

LOGGER = logging.getLogger(__name__)


class ThreadGateway(Protocol):
    async def open_group(self, staff_chat_id: int, title: str) -> int: ...
    async def close_group(self, staff_chat_id: int, thread_id: int) -> None: ...
    async def reopen_group(self, staff_chat_id: int, thread_id: int) -> None: ...


class ThreadSynchronizer:
    """Mirrors ticket state onto the staff-side thread of each ticket.

    Thread calls run after the ticket change is committed. A failed call is
    logged, recorded and returned; the ticket status is left as committed.
    """

    def __init__(
        self,
        gateway: ThreadGateway | None,
        staff_chat_id: int | None,
        enabled: bool,
        ticket_repo: TicketRepository,
        event_repo: EventRepository,
    ) -> None:
        self.gateway = gateway
        self.staff_chat_id = staff_chat_id
        self.enabled = bool(enabled and gateway is not None and staff_chat_id is not None)
        self.ticket_repo = ticket_repo
        self.event_repo = event_repo

    def applies_to(self, ticket: TicketRecord) -> bool:
        return self.enabled and ticket.thread_id is not None

    async def on_open(self, ticket: TicketRecord, title: str) -> TicketRecord:
        """Create the staff thread for a ticket that does not have one yet."""
        if not self.enabled or ticket.thread_id is not None:
            return ticket
        assert self.gateway is not None and self.staff_chat_id is not None
        try:
            thread_id = await self.gateway.open_group(self.staff_chat_id, title)
        except Exception as exc:
            await self._report(ticket, "open", exc)
            return ticket
        stored = await self.ticket_repo.set_thread_id(ticket.ticket_id, thread_id)
        if stored is None:
            # Another task attached a thread first; keep the stored one.
            current = await self.ticket_repo.find_by_id(ticket.ticket_id)
            return current or ticket
        LOGGER.info("Opened staff thread. ticket=%s thread=%s", ticket.ticket_id, thread_id)
        return stored

    async def on_close(self, ticket: TicketRecord) -> ThreadSyncFailedError | None:
        if not self.applies_to(ticket):
            return None
        assert self.gateway is not None and self.staff_chat_id is not None
        try:
            await self.gateway.close_group(self.staff_chat_id, ticket.thread_id)  # type: ignore[arg-type]
        except Exception as exc:
            return await self._report(ticket, "close", exc)
        LOGGER.info("Closed staff thread. ticket=%s thread=%s", ticket.ticket_id, ticket.thread_id)
        return None

    async def on_reopen(self, ticket: TicketRecord) -> ThreadSyncFailedError | None:
        if not self.applies_to(ticket):
            return None
        assert self.gateway is not None and self.staff_chat_id is not None
        try:
            await self.gateway.reopen_group(self.staff_chat_id, ticket.thread_id)  # type: ignore[arg-type]
        except Exception as exc:
            return await self._report(ticket, "reopen", exc)
        LOGGER.info("Reopened staff thread. ticket=%s thread=%s", ticket.ticket_id, ticket.thread_id)
        return None

    async def _report(self, ticket: TicketRecord, action: str, exc: Exception) -> ThreadSyncFailedError:
        LOGGER.warning(
            "Staff thread sync failed. ticket=%s thread=%s action=%s",
            ticket.ticket_id,
            ticket.thread_id,
            action,
            exc_info=exc,
        )
        failure = ThreadSyncFailedError()
        failure.__cause__ = exc
        try:
            await self.event_repo.log(
                ticket_id=ticket.ticket_id,
                actor_id=None,
                event_type="thread_sync_failed",
                payload={"action": action, "thread_id": ticket.thread_id, "error": str(exc)},
            )
        except BotError:
            LOGGER.error("Could not record thread sync failure. ticket=%s", ticket.ticket_id)
        return failure
