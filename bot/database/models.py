from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Messenger(StrEnum):
    DISCORD = "discord"
    WEB = "web"
    TELEGRAM = "telegram"
    SIGNAL = "signal"


class TicketStatus(StrEnum):
    OPEN = "open"
    CLOSED = "closed"
    BANNED = "banned"


@dataclass(frozen=True, slots=True)
class UserRef:
    """End-user identity on the messenger the conversation arrived from."""

    messenger: Messenger
    raw_id: str

    def __str__(self) -> str:
        return f"{self.messenger.value}:{self.raw_id}"


@dataclass(slots=True)
class TicketRecord:
    ticket_id: int
    user: UserRef
    category: str
    status: TicketStatus
    thread_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is TicketStatus.OPEN


@dataclass(slots=True)
class TicketEvent:
    id: str
    ticket_id: int
    actor_id: str | None
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None
