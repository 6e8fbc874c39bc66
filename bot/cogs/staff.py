from __future__ import annotations

import logging

from discord.ext import commands

from core.bot import SupportBot
from services.staff_commands import CommandReply
from utils.embeds import make_embed, staff_embed, success_embed
from utils.staff_context import build_staff_event, is_staff_channel

LOGGER = logging.getLogger(__name__)


class StaffCog(commands.Cog):
    """Staff chat commands. Reply to a ticket message or write in its thread."""

    def __init__(self, bot: SupportBot) -> None:
        self.bot = bot

    async def cog_check(self, ctx: commands.Context[SupportBot]) -> bool:
        if ctx.command is not None and ctx.command.name == "help":
            return True
        return ctx.guild is not None and is_staff_channel(ctx.channel, self.bot.config.staff_chat)

    async def _deliver(self, ctx: commands.Context[SupportBot], reply: CommandReply) -> None:
        await ctx.reply(embed=success_embed(reply.staff_text), mention_author=False)
        if reply.warning:
            await ctx.send(embed=staff_embed("Thread out of sync", reply.warning))
        if reply.user_text and reply.ticket is not None:
            await self.bot.messengers.send(reply.ticket.user, reply.user_text)

    @commands.command(name="help", help="Show staff or user help.")
    async def help_command(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        reply = self.bot.staff_commands.help(event)
        await ctx.reply(embed=make_embed("Help", reply.staff_text), mention_author=False)

    @commands.command(name="clear", help="Close all open tickets.")
    async def clear(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        await self._deliver(ctx, await self.bot.staff_commands.clear(event))

    @commands.command(name="open", help="List open tickets for this staff channel.")
    async def open_tickets(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        reply = await self.bot.staff_commands.list_open(event)
        await ctx.reply(embed=staff_embed("Tickets", reply.staff_text), mention_author=False)

    @commands.command(name="close", help="Close the referenced ticket.")
    async def close(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        await self._deliver(ctx, await self.bot.staff_commands.close(event))

    @commands.command(name="ban", help="Ban the user behind the referenced ticket.")
    async def ban(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        await self._deliver(ctx, await self.bot.staff_commands.ban(event))

    @commands.command(name="reopen", help="Reopen the referenced ticket.")
    async def reopen(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        await self._deliver(ctx, await self.bot.staff_commands.reopen(event))

    @commands.command(name="unban", help="Lift the ban on the referenced ticket.")
    async def unban(self, ctx: commands.Context[SupportBot]) -> None:
        event = await build_staff_event(ctx.message, self.bot.config.staff_chat)
        await self._deliver(ctx, await self.bot.staff_commands.unban(event))


async def setup(bot: SupportBot) -> None:
    await bot.add_cog(StaffCog(bot))
