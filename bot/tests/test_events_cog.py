from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cogs.events import EventsCog
from core.config import AppConfig, DiscordConfig
from database.models import Messenger, UserRef


def _bot(valid_command: bool) -> SimpleNamespace:
    return SimpleNamespace(
        config=AppConfig(discord=DiscordConfig(token="x", prefix="/")),
        get_context=AsyncMock(return_value=SimpleNamespace(valid=valid_command)),
        relay_service=SimpleNamespace(handle_user_message=AsyncMock()),
    )


def _direct_message(content: str) -> MagicMock:
    message = MagicMock()
    message.author.bot = False
    message.author.id = 42
    message.guild = None
    message.content = content
    return message


@pytest.mark.asyncio
async def test_dm_starting_with_prefix_is_relayed_when_not_a_command() -> None:
    bot = _bot(valid_command=False)
    cog = EventsCog(bot)

    await cog.on_message(_direct_message("/etc path question"))

    bot.relay_service.handle_user_message.assert_awaited_once_with(
        UserRef(messenger=Messenger.DISCORD, raw_id="42"), "/etc path question"
    )


@pytest.mark.asyncio
async def test_registered_command_is_not_relayed() -> None:
    bot = _bot(valid_command=True)
    cog = EventsCog(bot)

    await cog.on_message(_direct_message("/help"))

    bot.relay_service.handle_user_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_plain_dm_skips_command_lookup() -> None:
    bot = _bot(valid_command=False)
    cog = EventsCog(bot)

    await cog.on_message(_direct_message("hello"))

    bot.get_context.assert_not_awaited()
    bot.relay_service.handle_user_message.assert_awaited_once()
