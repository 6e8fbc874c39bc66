from __future__ import annotations

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from core.bot import SupportBot
from database.models import Messenger, UserRef


class WebMessageIn(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    text: str = Field(min_length=1, max_length=4000)
    category: str = Field(default="", max_length=64)


def _auth(x_api_key: str | None, expected: str) -> None:
    if not expected:
        return
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_api_app(bot: SupportBot) -> FastAPI:
    app = FastAPI(title="Support Relay API", version="1.0.0")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/tickets/open")
    async def open_tickets(
        category: str | None = None, x_api_key: str | None = Header(default=None)
    ) -> dict[str, object]:
        _auth(x_api_key, bot.config.fastapi.api_key)
        rows = await bot.ticket_service.list_open(category=category)
        return {
            "items": [
                {
                    "ticket_id": row.ticket_id,
                    "token": bot.ticket_service.codec.encode(row.ticket_id),
                    "messenger": row.user.messenger.value,
                    "user_id": row.user.raw_id,
                    "category": row.category,
                    "thread_id": row.thread_id,
                }
                for row in rows
            ]
        }

    @app.post("/web/messages", status_code=202)
    async def web_message(payload: WebMessageIn, x_api_key: str | None = Header(default=None)) -> dict[str, object]:
        _auth(x_api_key, bot.config.fastapi.api_key)
        user = UserRef(messenger=Messenger.WEB, raw_id=payload.user_id)
        ticket = await bot.relay_service.handle_user_message(user, payload.text, category=payload.category)
        if ticket is None:
            return {"accepted": False}
        return {"accepted": True, "ticket": bot.ticket_service.codec.encode(ticket.ticket_id)}

    @app.get("/web/{user_id}/messages")
    async def web_outbox(user_id: str, x_api_key: str | None = Header(default=None)) -> dict[str, object]:
        _auth(x_api_key, bot.config.fastapi.api_key)
        return {"messages": await bot.web_outbox.drain(user_id)}

    return app
