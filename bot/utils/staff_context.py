from __future__ import annotations

import discord

from core.config import StaffChatConfig
from database.models import Messenger
from services.staff_commands import StaffCommandEvent


def staff_channel_id(channel: discord.abc.Messageable) -> int | None:
    if isinstance(channel, discord.Thread):
        return channel.parent_id
    return getattr(channel, "id", None)


def thread_id_of(channel: discord.abc.Messageable) -> int | None:
    return channel.id if isinstance(channel, discord.Thread) else None


def is_staff_channel(channel: discord.abc.Messageable, config: StaffChatConfig) -> bool:
    channel_id = staff_channel_id(channel)
    if channel_id is None:
        return False
    return channel_id == config.chat_id or channel_id in config.category_channels.values()


def is_admin(member: discord.abc.User, config: StaffChatConfig) -> bool:
    if not isinstance(member, discord.Member):
        return False
    if member.guild_permissions.administrator:
        return True
    return any(role.name.lower() in config.admin_role_names for role in member.roles)


async def replied_bot_text(message: discord.Message) -> str | None:
    """Text of the bot message this one replies to, if any.

    Only messages written by a bot count, so a staff member quoting a
    ticket token in their own message cannot redirect a command.
    """
    ref = message.reference
    if ref is None or ref.message_id is None:
        return None
    replied = ref.resolved
    if not isinstance(replied, discord.Message):
        try:
            replied = await message.channel.fetch_message(ref.message_id)
        except discord.HTTPException:
            return None
    if not replied.author.bot:
        return None
    if replied.content:
        return replied.content
    for embed in replied.embeds:
        if embed.description:
            return embed.description
    return None


async def build_staff_event(message: discord.Message, config: StaffChatConfig) -> StaffCommandEvent:
    return StaffCommandEvent(
        actor_id=str(message.author.id),
        messenger=Messenger.DISCORD,
        is_admin=is_admin(message.author, config),
        reply_text=await replied_bot_text(message),
        thread_id=thread_id_of(message.channel),
        category=config.category_for_channel(staff_channel_id(message.channel)),
    )
