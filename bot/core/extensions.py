from __future__ import annotations

import logging

from discord.ext import commands

LOGGER = logging.getLogger(__name__)

# The relay cannot work without these; a failure to load them aborts startup.
REQUIRED_EXTENSIONS = frozenset({"cogs.events"})


async def load_extensions(bot: commands.Bot, extension_names: list[str]) -> list[str]:
    loaded: list[str] = []
    for ext in extension_names:
        if ext in bot.extensions:
            LOGGER.warning("Extension already loaded: %s", ext)
            continue
        try:
            await bot.load_extension(ext)
        except commands.ExtensionError:
            if ext in REQUIRED_EXTENSIONS:
                raise
            LOGGER.exception("Failed to load extension: %s", ext)
            continue
        LOGGER.info("Loaded extension: %s", ext)
        loaded.append(ext)
    return loaded
