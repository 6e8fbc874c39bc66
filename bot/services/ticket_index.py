from __future__ import annotations

from database.models import TicketRecord, TicketStatus, UserRef


class TicketIndex:
    """In-process mirror of the ticket store keyed by user.

    The store stays authoritative. The index starts empty after a restart
    and is filled from store reads, and it is only written after the store
    has confirmed a change.
    """

    def __init__(self) -> None:
        self._status: dict[UserRef, TicketStatus] = {}
        self._ticket_ids: dict[UserRef, int] = {}
        self._sent: dict[UserRef, set[str]] = {}
        self._users_by_ticket: dict[int, UserRef] = {}

    def __len__(self) -> int:
        return len(self._ticket_ids)

    def __contains__(self, user: object) -> bool:
        return user in self._ticket_ids

    def set(self, user: UserRef, ticket: TicketRecord) -> None:
        previous = self._ticket_ids.get(user)
        if previous is not None and previous != ticket.ticket_id:
            self._users_by_ticket.pop(previous, None)
            self._sent.pop(user, None)
        self._status[user] = ticket.status
        self._ticket_ids[user] = ticket.ticket_id
        self._users_by_ticket[ticket.ticket_id] = user

    def clear(self, user: UserRef) -> None:
        ticket_id = self._ticket_ids.pop(user, None)
        if ticket_id is not None:
            self._users_by_ticket.pop(ticket_id, None)
        self._status.pop(user, None)
        self._sent.pop(user, None)

    def clear_all(self) -> None:
        self._status.clear()
        self._ticket_ids.clear()
        self._sent.clear()
        self._users_by_ticket.clear()

    def get_status(self, user: UserRef) -> TicketStatus | None:
        return self._status.get(user)

    def get_ticket_id(self, user: UserRef) -> int | None:
        return self._ticket_ids.get(user)

    def user_for_ticket(self, ticket_id: int) -> UserRef | None:
        return self._users_by_ticket.get(ticket_id)

    def mark_sent(self, user: UserRef, event: str) -> None:
        if user not in self._ticket_ids:
            return
        self._sent.setdefault(user, set()).add(event)

    def was_sent(self, user: UserRef, event: str) -> bool:
        return event in self._sent.get(user, ())
