from __future__ import annotations

import logging
from dataclasses import dataclass

from discord.ext import commands

from utils.embeds import error_embed

LOGGER = logging.getLogger(__name__)


class BotError(RuntimeError):
    user_message: str = "An unexpected error occurred."


@dataclass(slots=True)
class PermissionDeniedError(BotError):
    user_message: str = "You do not have permission to run this action."


@dataclass(slots=True)
class TicketNotFoundError(BotError):
    user_message: str = "Ticket not found."


@dataclass(slots=True)
class InvalidTransitionError(BotError):
    user_message: str = "The ticket is not in a valid state for this action."


@dataclass(slots=True)
class StoreUnavailableError(BotError):
    user_message: str = "Ticket storage is unavailable. Please retry in a moment."


@dataclass(slots=True)
class ThreadSyncFailedError(BotError):
    user_message: str = "The ticket was updated, but its staff thread could not be synced."


@dataclass(slots=True)
class ValidationError(BotError):
    user_message: str = "The provided input is not valid."


async def send_error_response(target: commands.Context[commands.Bot], message: str) -> None:
    await target.reply(embed=error_embed(message), mention_author=False)


def _humanize_command_error(error: Exception) -> str:
    if isinstance(error, commands.CommandInvokeError) and isinstance(error.original, BotError):
        return error.original.user_message
    if isinstance(error, BotError):
        return error.user_message
    if isinstance(error, commands.CommandOnCooldown):
        return f"Cooldown active. Retry in {error.retry_after:.1f} seconds."
    if isinstance(error, commands.CheckFailure):
        return "You are not authorized for this command."
    if isinstance(error, commands.BadArgument):
        return "Command argument was invalid."
    return "An unexpected command error occurred."


def _is_expected(error: Exception) -> bool:
    if isinstance(error, commands.CommandInvokeError):
        error = error.original
    return isinstance(
        error,
        (
            TicketNotFoundError,
            InvalidTransitionError,
            PermissionDeniedError,
            ValidationError,
            commands.CheckFailure,
        ),
    )


async def handle_prefix_command_error(
    ctx: commands.Context[commands.Bot], error: commands.CommandError
) -> None:
    if isinstance(error, commands.CommandNotFound):
        return
    message = _humanize_command_error(error)
    if _is_expected(error):
        LOGGER.info(
            "Prefix command rejected. command=%s channel=%s user=%s reason=%s",
            getattr(ctx.command, "qualified_name", None),
            getattr(ctx.channel, "id", None),
            ctx.author.id,
            message,
        )
    else:
        LOGGER.exception(
            "Prefix command failed. command=%s channel=%s user=%s",
            getattr(ctx.command, "qualified_name", None),
            getattr(ctx.channel, "id", None),
            ctx.author.id,
            exc_info=error,
        )
    await send_error_response(ctx, message)
