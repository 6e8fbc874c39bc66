from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import uvicorn

from core.api import create_api_app
from core.bot import SupportBot
from core.config import AppConfig, load_config
from core.logging import configure_logging

LOGGER = logging.getLogger(__name__)


def _api_server(bot: SupportBot, config: AppConfig) -> uvicorn.Server:
    return uvicorn.Server(
        uvicorn.Config(
            app=create_api_app(bot),
            host=config.fastapi.host,
            port=config.fastapi.port,
            log_level=config.logging.level.lower(),
        )
    )


async def _run_bot(config: AppConfig) -> None:
    bot = SupportBot(config=config)
    async with bot:
        api_task: asyncio.Task[None] | None = None
        if config.fastapi.enabled:
            if not config.fastapi.api_key:
                LOGGER.warning("API_KEY is not set; the HTTP API accepts unauthenticated requests")
            api_task = asyncio.create_task(_api_server(bot, config).serve())
        try:
            await bot.start(config.discord.token)
        finally:
            if api_task:
                api_task.cancel()


def main() -> None:
    root = Path(__file__).resolve().parent
    config = load_config(root / "config" / "config.yaml")
    configure_logging(config.logging)
    asyncio.run(_run_bot(config))


if __name__ == "__main__":
    main()
