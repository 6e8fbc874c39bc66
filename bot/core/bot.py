from __future__ import annotations

import logging
from pathlib import Path

import discord
from discord.ext import commands

from core.config import AppConfig
from core.errors import handle_prefix_command_error
from core.extensions import load_extensions
from database.base import Database
from database.migrations.runner import run_migrations
from database.models import Messenger
from database.repositories import EventRepository, TicketRepository
from services.cache import CacheBackend, build_cache
from services.gateways import DiscordDirectMessages, DiscordStaffChat, MessengerRouter, WebOutbox
from services.relay_service import RelayService
from services.staff_commands import StaffCommandRouter
from services.thread_sync import ThreadSynchronizer
from services.ticket_index import TicketIndex
from services.ticket_service import TicketService, TicketServiceDeps
from utils.i18n import I18N
from utils.locks import TicketLocks
from utils.rate_limit import DistributedRateLimiter
from utils.ticket_codec import TicketCodec

LOGGER = logging.getLogger(__name__)


class SupportBot(commands.Bot):
    def __init__(self, config: AppConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True

        super().__init__(
            command_prefix=config.discord.prefix,
            intents=intents,
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True, replied_user=False),
            help_command=None,
        )
        self.config = config
        self.root_dir = Path(__file__).resolve().parent.parent
        self.database = Database(
            url=config.database.url,
            timeout_seconds=config.database.timeout_seconds,
            pool_min_size=config.database.pool_min_size,
            pool_max_size=config.database.pool_max_size,
        )
        self.cache: CacheBackend | None = None
        self.i18n = I18N(self.root_dir / "config" / "locales", config.i18n.default_locale)
        self.web_outbox = WebOutbox()

        # The ticket index and locks live as long as this process; the store
        # is the source of truth across restarts.
        self.ticket_index = TicketIndex()
        self.ticket_locks = TicketLocks()

        # Repositories and services are initialized during setup_hook.
        self.ticket_repo: TicketRepository
        self.event_repo: EventRepository
        self.staff_chat: DiscordStaffChat
        self.messengers: MessengerRouter
        self.thread_sync: ThreadSynchronizer
        self.ticket_service: TicketService
        self.relay_service: RelayService
        self.staff_commands: StaffCommandRouter

    async def setup_hook(self) -> None:
        await self.database.connect()
        await run_migrations(self.database, self.root_dir / "database" / "migrations")
        self.cache = await build_cache(self.config.redis)

        self.ticket_repo = TicketRepository(self.database)
        self.event_repo = EventRepository(self.database)

        self.staff_chat = DiscordStaffChat(self)
        self.messengers = MessengerRouter()
        self.messengers.register(Messenger.DISCORD, DiscordDirectMessages(self))
        self.messengers.register(Messenger.WEB, self.web_outbox)

        self.thread_sync = ThreadSynchronizer(
            gateway=self.staff_chat,
            staff_chat_id=self.config.staff_chat.chat_id,
            enabled=self.config.staff_chat.is_forum,
            ticket_repo=self.ticket_repo,
            event_repo=self.event_repo,
        )
        deps = TicketServiceDeps(
            ticket_repo=self.ticket_repo,
            event_repo=self.event_repo,
            index=self.ticket_index,
            locks=self.ticket_locks,
            codec=TicketCodec(self.i18n.t("ticket.marker")),
            thread_sync=self.thread_sync,
        )
        self.ticket_service = TicketService(self.config, deps)
        self.relay_service = RelayService(
            config=self.config,
            tickets=self.ticket_service,
            staff_chat=self.staff_chat,
            messengers=self.messengers,
            rate_limiter=DistributedRateLimiter(self.cache),
            i18n=self.i18n,
        )
        self.staff_commands = StaffCommandRouter(self.ticket_service, self.i18n)

        if self.config.staff_chat.chat_id is None:
            LOGGER.warning("STAFF_CHAT_ID is not set; inbound messages will not reach staff")
        await load_extensions(self, self.config.enabled_extensions)

    async def on_ready(self) -> None:
        LOGGER.info("Bot ready as %s (%s)", self.user, self.user.id if self.user else "n/a")
        activity_type = self.config.discord.activity_type.lower()
        if activity_type == "playing":
            activity = discord.Game(name=self.config.discord.status_text)
        elif activity_type == "listening":
            activity = discord.Activity(
                type=discord.ActivityType.listening, name=self.config.discord.status_text
            )
        else:
            activity = discord.Activity(
                type=discord.ActivityType.watching, name=self.config.discord.status_text
            )
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def on_command_error(self, ctx: commands.Context[commands.Bot], error: commands.CommandError) -> None:
        if ctx.command and ctx.command.has_error_handler():
            return
        await handle_prefix_command_error(ctx, error)

    async def close(self) -> None:
        await super().close()
        await self.database.close()
        if self.cache:
            await self.cache.close()
