from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any
from uuid import uuid4

from core.errors import StoreUnavailableError
from database.base import Database
from database.models import Messenger, TicketEvent, TicketRecord, TicketStatus, UserRef
from utils.time import to_iso, utc_now

LOGGER = logging.getLogger(__name__)

TICKET_COLUMNS = "ticket_id, user_id, messenger, category, status, thread_id, created_at, updated_at"


def _json_load(value: str | None, default: Any) -> Any:
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, separators=(",", ":"))


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class TicketRepository:
    """Durable ticket store. Every method is a single atomic store call."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, ticket: TicketRecord) -> int:
        """Insert ``ticket`` under a freshly allocated number and return it.

        The number comes from a single-row counter, so numbers only grow and
        are never handed out twice.
        """
        async with self.db.transaction() as tx:
            row = await tx.fetchone(
                """
                UPDATE ticket_counter
                SET value = value + 1
                WHERE id = 1
                RETURNING value;
                """
            )
            if row is None:
                LOGGER.error("ticket_counter row is missing; migrations have not been applied")
                raise StoreUnavailableError()
            ticket_id = int(row["value"])
            await tx.execute(
                """
                INSERT INTO tickets(ticket_id, user_id, messenger, category, status, thread_id)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                [
                    ticket_id,
                    ticket.user.raw_id,
                    ticket.user.messenger.value,
                    ticket.category,
                    ticket.status.value,
                    ticket.thread_id,
                ],
            )
        ticket.ticket_id = ticket_id
        return ticket_id

    async def update_status(
        self,
        ticket_id: int,
        status: TicketStatus,
        expected: TicketStatus | None = None,
    ) -> TicketRecord | None:
        if expected is None:
            row = await self.db.fetchone(
                f"""
                UPDATE tickets
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE ticket_id = ?
                RETURNING {TICKET_COLUMNS};
                """,
                [status.value, ticket_id],
            )
        else:
            row = await self.db.fetchone(
                f"""
                UPDATE tickets
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE ticket_id = ? AND status = ?
                RETURNING {TICKET_COLUMNS};
                """,
                [status.value, ticket_id, expected.value],
            )
        return self._row_to_ticket(row) if row else None

    async def set_thread_id(self, ticket_id: int, thread_id: int) -> TicketRecord | None:
        row = await self.db.fetchone(
            f"""
            UPDATE tickets
            SET thread_id = ?, updated_at = CURRENT_TIMESTAMP
            WHERE ticket_id = ? AND thread_id IS NULL
            RETURNING {TICKET_COLUMNS};
            """,
            [thread_id, ticket_id],
        )
        return self._row_to_ticket(row) if row else None

    async def find_open_by_user(self, user: UserRef) -> TicketRecord | None:
        row = await self.db.fetchone(
            f"""
            SELECT {TICKET_COLUMNS} FROM tickets
            WHERE user_id = ? AND messenger = ? AND status = 'open'
            ORDER BY ticket_id DESC
            LIMIT 1;
            """,
            [user.raw_id, user.messenger.value],
        )
        return self._row_to_ticket(row) if row else None

    async def find_latest_by_user(self, user: UserRef) -> TicketRecord | None:
        row = await self.db.fetchone(
            f"""
            SELECT {TICKET_COLUMNS} FROM tickets
            WHERE user_id = ? AND messenger = ?
            ORDER BY ticket_id DESC
            LIMIT 1;
            """,
            [user.raw_id, user.messenger.value],
        )
        return self._row_to_ticket(row) if row else None

    async def has_banned(self, user: UserRef) -> bool:
        row = await self.db.fetchone(
            """
            SELECT EXISTS(
                SELECT 1 FROM tickets
                WHERE user_id = ? AND messenger = ? AND status = 'banned'
            ) AS banned;
            """,
            [user.raw_id, user.messenger.value],
        )
        return bool(row and row["banned"])

    async def find_by_id(self, ticket_id: int, category: str | None = None) -> TicketRecord | None:
        if category is None:
            row = await self.db.fetchone(
                f"SELECT {TICKET_COLUMNS} FROM tickets WHERE ticket_id = ?;",
                [ticket_id],
            )
        else:
            row = await self.db.fetchone(
                f"SELECT {TICKET_COLUMNS} FROM tickets WHERE ticket_id = ? AND category = ?;",
                [ticket_id, category],
            )
        return self._row_to_ticket(row) if row else None

    async def find_by_thread_id(self, thread_id: int) -> TicketRecord | None:
        row = await self.db.fetchone(
            f"""
            SELECT {TICKET_COLUMNS} FROM tickets
            WHERE thread_id = ?
            ORDER BY ticket_id DESC
            LIMIT 1;
            """,
            [thread_id],
        )
        return self._row_to_ticket(row) if row else None

    async def list_open(self, category: str | None = None, limit: int = 200) -> list[TicketRecord]:
        if category is None:
            rows = await self.db.fetchall(
                f"""
                SELECT {TICKET_COLUMNS} FROM tickets
                WHERE status = 'open'
                ORDER BY ticket_id ASC
                LIMIT ?;
                """,
                [limit],
            )
        else:
            rows = await self.db.fetchall(
                f"""
                SELECT {TICKET_COLUMNS} FROM tickets
                WHERE status = 'open' AND category = ?
                ORDER BY ticket_id ASC
                LIMIT ?;
                """,
                [category, limit],
            )
        return [self._row_to_ticket(row) for row in rows]

    async def close_all_open(self) -> list[TicketRecord]:
        rows = await self.db.fetchall(
            f"""
            UPDATE tickets
            SET status = 'closed', updated_at = CURRENT_TIMESTAMP
            WHERE status = 'open'
            RETURNING {TICKET_COLUMNS};
            """
        )
        return [self._row_to_ticket(row) for row in rows]

    def _row_to_ticket(self, row: dict[str, Any]) -> TicketRecord:
        return TicketRecord(
            ticket_id=int(row["ticket_id"]),
            user=UserRef(messenger=Messenger(row["messenger"]), raw_id=str(row["user_id"])),
            category=row["category"] or "",
            status=TicketStatus(row["status"]),
            thread_id=int(row["thread_id"]) if row["thread_id"] is not None else None,
            created_at=_as_text(row["created_at"]),
            updated_at=_as_text(row["updated_at"]),
        )


class EventRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def log(
        self,
        ticket_id: int,
        actor_id: str | None,
        event_type: str,
        payload: dict[str, Any] | None = None,
    ) -> str:
        event_id = str(uuid4())
        await self.db.execute(
            """
            INSERT INTO ticket_events(id, ticket_id, actor_id, event_type, payload_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            [event_id, ticket_id, actor_id, event_type, _json_dump(payload or {}), to_iso(utc_now())],
        )
        return event_id

    async def list_for_ticket(self, ticket_id: int) -> list[TicketEvent]:
        rows = await self.db.fetchall(
            """
            SELECT * FROM ticket_events
            WHERE ticket_id = ?
            ORDER BY created_at ASC;
            """,
            [ticket_id],
        )
        return [
            TicketEvent(
                id=row["id"],
                ticket_id=int(row["ticket_id"]),
                actor_id=row["actor_id"],
                event_type=row["event_type"],
                payload=dict(_json_load(row["payload_json"], {})),
                created_at=_as_text(row["created_at"]),
            )
            for row in rows
        ]
