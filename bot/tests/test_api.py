from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from core.api import create_api_app
from core.config import AppConfig, DiscordConfig, FastApiConfig
from database.models import Messenger, TicketRecord, TicketStatus, UserRef
from services.gateways import WebOutbox
from utils.ticket_codec import TicketCodec


@pytest.fixture
def fake_bot() -> SimpleNamespace:
    ticket = TicketRecord(
        ticket_id=1,
        user=UserRef(messenger=Messenger.WEB, raw_id="42"),
        category="",
        status=TicketStatus.OPEN,
    )

    class _Tickets:
        codec = TicketCodec("from")

        async def list_open(self, category: str | None = None) -> list[TicketRecord]:
            return [ticket]

    class _Relay:
        def __init__(self) -> None:
            self.received: list[tuple[UserRef, str, str]] = []

        async def handle_user_message(self, user: UserRef, text: str, category: str = "") -> TicketRecord:
            self.received.append((user, text, category))
            return ticket

    return SimpleNamespace(
        config=AppConfig(discord=DiscordConfig(token="x"), fastapi=FastApiConfig(api_key="secret")),
        ticket_service=_Tickets(),
        relay_service=_Relay(),
        web_outbox=WebOutbox(),
    )


def test_health_needs_no_key(fake_bot) -> None:
    client = TestClient(create_api_app(fake_bot))

    assert client.get("/health").json() == {"status": "ok"}


def test_open_tickets_require_api_key(fake_bot) -> None:
    client = TestClient(create_api_app(fake_bot))

    assert client.get("/tickets/open").status_code == 401
    response = client.get("/tickets/open", headers={"x-api-key": "secret"})
    assert response.status_code == 200
    assert response.json()["items"][0]["token"] == "#T000001"


def test_web_message_opens_ticket(fake_bot) -> None:
    client = TestClient(create_api_app(fake_bot))

    response = client.post(
        "/web/messages",
        json={"user_id": "42", "text": "hello"},
        headers={"x-api-key": "secret"},
    )

    assert response.status_code == 202
    assert response.json() == {"accepted": True, "ticket": "#T000001"}
    user, text, _ = fake_bot.relay_service.received[0]
    assert user == UserRef(messenger=Messenger.WEB, raw_id="42")
    assert text == "hello"


def test_web_outbox_is_drained(fake_bot) -> None:
    asyncio.run(fake_bot.web_outbox.send(UserRef(messenger=Messenger.WEB, raw_id="42"), "hi"))
    client = TestClient(create_api_app(fake_bot))
    headers = {"x-api-key": "secret"}

    first = client.get("/web/42/messages", headers=headers).json()
    second = client.get("/web/42/messages", headers=headers).json()

    assert first == {"messages": ["hi"]}
    assert second == {"messages": []}
