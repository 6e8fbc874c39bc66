from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.bot import SupportBot
from core.errors import InvalidTransitionError, TicketNotFoundError
from database.models import Messenger, UserRef
from services.ticket_service import TicketReference
from utils.staff_context import is_staff_channel, replied_bot_text, thread_id_of

LOGGER = logging.getLogger(__name__)


class EventsCog(commands.Cog):
    """Relays Discord DMs into tickets and staff chat replies back out."""

    def __init__(self, bot: SupportBot) -> None:
        self.bot = bot

    async def _is_command(self, message: discord.Message) -> bool:
        if not message.content.startswith(self.bot.config.discord.prefix):
            return False
        ctx = await self.bot.get_context(message)
        return ctx.valid

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or not message.content:
            return
        if await self._is_command(message):
            return
        if message.guild is None:
            await self._relay_direct_message(message)
            return
        if is_staff_channel(message.channel, self.bot.config.staff_chat):
            await self._relay_staff_reply(message)

    async def _relay_direct_message(self, message: discord.Message) -> None:
        user = UserRef(messenger=Messenger.DISCORD, raw_id=str(message.author.id))
        await self.bot.relay_service.handle_user_message(user, message.content)

    async def _relay_staff_reply(self, message: discord.Message) -> None:
        reference = TicketReference(
            reply_text=await replied_bot_text(message),
            thread_id=thread_id_of(message.channel),
        )
        if reference.reply_text is None and reference.thread_id is None:
            return
        try:
            await self.bot.relay_service.handle_staff_reply(reference, message.content, str(message.author.id))
        except TicketNotFoundError:
            LOGGER.debug("Staff message does not reference a ticket. message=%s", message.id)
        except InvalidTransitionError as exc:
            await message.reply(exc.user_message, mention_author=False)


async def setup(bot: SupportBot) -> None:
    await bot.add_cog(EventsCog(bot))
