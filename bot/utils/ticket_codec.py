from __future__ import annotations

import re

TOKEN_PREFIX = "#T"
TOKEN_WIDTH = 6
# Largest id a signed 64-bit store column holds.
MAX_TICKET_ID = 2**63 - 1


class TicketCodec:
    """Formats and parses the ``#T000042 <marker>`` ticket reference.

    The marker is the locale string that follows the digits in every staff
    notification, so a reference inside a longer sentence is unambiguous.
    Only the first reference in a text is considered.
    """

    def __init__(self, marker: str) -> None:
        if not marker.strip():
            raise ValueError("Ticket reference marker must not be empty")
        self.marker = marker
        self._pattern = re.compile(rf"{re.escape(TOKEN_PREFIX)}(\d{{1,19}}) {re.escape(marker)}")

    @staticmethod
    def encode(ticket_id: int) -> str:
        if ticket_id < 1:
            raise ValueError(f"Ticket ids are positive, got {ticket_id}")
        return f"{TOKEN_PREFIX}{ticket_id:0{TOKEN_WIDTH}d}"

    def reference(self, ticket_id: int) -> str:
        return f"{self.encode(ticket_id)} {self.marker}"

    def decode(self, text: object) -> int | None:
        if not isinstance(text, str) or not text:
            return None
        match = self._pattern.search(text)
        if match is None:
            return None
        ticket_id = int(match.group(1))
        return ticket_id if 0 < ticket_id <= MAX_TICKET_ID else None
