from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Protocol

import discord
from discord.ext import commands

from database.models import Messenger, UserRef

LOGGER = logging.getLogger(__name__)


class StaffChatGateway(Protocol):
    async def post(self, staff_chat_id: int, thread_id: int | None, text: str) -> None: ...


class MessengerGateway(Protocol):
    async def send(self, user: UserRef, text: str) -> None: ...


class MessengerRouter:
    """Delivers outbound text to the messenger a user wrote from."""

    def __init__(self) -> None:
        self._gateways: dict[Messenger, MessengerGateway] = {}

    def register(self, messenger: Messenger, gateway: MessengerGateway) -> None:
        self._gateways[messenger] = gateway

    def supports(self, messenger: Messenger) -> bool:
        return messenger in self._gateways

    async def send(self, user: UserRef, text: str) -> bool:
        gateway = self._gateways.get(user.messenger)
        if gateway is None:
            LOGGER.warning("No gateway registered for messenger. user=%s", user)
            return False
        try:
            await gateway.send(user, text)
        except (discord.HTTPException, OSError) as exc:
            LOGGER.warning("Outbound message failed. user=%s error=%s", user, exc)
            return False
        return True


class DiscordStaffChat:
    """Staff chat on a Discord channel; ticket threads live under it.

    Forum channels get one post per ticket, text channels get a public
    thread. Closing archives and locks the thread, reopening reverses that.
    """

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def _channel(self, channel_id: int) -> discord.abc.GuildChannel | discord.Thread:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        if isinstance(channel, discord.abc.PrivateChannel):
            raise TypeError(f"Channel {channel_id} is not a guild channel")
        return channel

    async def _thread(self, thread_id: int) -> discord.Thread:
        channel = await self._channel(thread_id)
        if not isinstance(channel, discord.Thread):
            raise TypeError(f"Channel {thread_id} is not a thread")
        return channel

    async def open_group(self, staff_chat_id: int, title: str) -> int:
        channel = await self._channel(staff_chat_id)
        if isinstance(channel, discord.ForumChannel):
            created = await channel.create_thread(name=title, content=title)
            return created.thread.id
        if isinstance(channel, discord.TextChannel):
            thread = await channel.create_thread(name=title, type=discord.ChannelType.public_thread)
            return thread.id
        raise TypeError(f"Channel {staff_chat_id} cannot hold threads")

    async def close_group(self, staff_chat_id: int, thread_id: int) -> None:
        thread = await self._thread(thread_id)
        if thread.parent_id != staff_chat_id:
            LOGGER.warning("Thread parent mismatch. thread=%s parent=%s", thread_id, thread.parent_id)
        await thread.edit(archived=True, locked=True)

    async def reopen_group(self, staff_chat_id: int, thread_id: int) -> None:
        thread = await self._thread(thread_id)
        if thread.parent_id != staff_chat_id:
            LOGGER.warning("Thread parent mismatch. thread=%s parent=%s", thread_id, thread.parent_id)
        await thread.edit(archived=False, locked=False)

    async def post(self, staff_chat_id: int, thread_id: int | None, text: str) -> None:
        target = await self._channel(thread_id if thread_id is not None else staff_chat_id)
        if not isinstance(target, (discord.TextChannel, discord.Thread)):
            raise TypeError(f"Channel {target.id} cannot receive messages")
        await target.send(text, allowed_mentions=discord.AllowedMentions.none())


class DiscordDirectMessages:
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def send(self, user: UserRef, text: str) -> None:
        target = self.bot.get_user(int(user.raw_id))
        if target is None:
            target = await self.bot.fetch_user(int(user.raw_id))
        await target.send(text)


class WebOutbox:
    """Per-user queue drained by the web widget over HTTP."""

    def __init__(self, max_per_user: int = 200) -> None:
        self.max_per_user = max_per_user
        self._queues: dict[str, deque[str]] = {}
        self._lock = asyncio.Lock()

    async def send(self, user: UserRef, text: str) -> None:
        async with self._lock:
            queue = self._queues.setdefault(user.raw_id, deque(maxlen=self.max_per_user))
            queue.append(text)

    async def drain(self, raw_id: str) -> list[str]:
        async with self._lock:
            queue = self._queues.pop(raw_id, None)
        return list(queue) if queue else []
