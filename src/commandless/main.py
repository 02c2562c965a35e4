"""
Commandless Discord Runner
==========================

Runs a py-cord bot that forwards messages to the Commandless relay, using
credentials from the environment (or a ``.env`` file in the working directory)
and tuning from ``./config/app_config.yml``.
"""

import asyncio
import sys

import discord

from commandless.bot.cogs import relay_listener
from commandless.cache.config_cache import ConfigCache
from commandless.configuration.app_configuration import app_config
from commandless.configuration.relay_settings import RelaySettings
from commandless.errors import MissingSettingError
from commandless.relay.relay_client import RelayClient
from commandless.util.logger import get_logger, handle_exception, silence_noisy_loggers

logger = get_logger("main")


def load_settings() -> RelaySettings:
    """Load relay settings and require a Discord bot token.

    Raises
    ------
    SystemExit
        If ``COMMANDLESS_API_KEY`` or the bot token is missing.
    """
    try:
        settings = RelaySettings.from_env()
    except MissingSettingError as exc:
        logger.critical("%s. Bot cannot start.", exc)
        sys.exit(1)
    if not settings.bot_token:
        logger.critical("'BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return settings


def build_intents() -> discord.Intents:
    """Intents for guild messages, message content and direct messages."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.messages = True
    intents.message_content = True
    intents.dm_messages = True
    return intents


def create_bot(settings: RelaySettings) -> tuple[discord.Bot, relay_listener.RelayListenerCog]:
    """Instantiate the Discord bot and register the relay listener."""
    relay = RelayClient(settings.credentials, settings.base_url, timeout=app_config.request_timeout)
    relay.bot_id = settings.bot_id
    config_cache = ConfigCache(
        relay.base_url,
        settings.credentials,
        fail_open=app_config.fail_open,
        request_timeout=app_config.request_timeout,
    )

    bot = discord.Bot(intents=build_intents())
    cog = relay_listener.setup(
        bot,
        relay,
        config_cache,
        mention_required=app_config.mention_required,
        poll_interval=app_config.relay_poll_interval,
        cleanup_interval=app_config.rate_limit_cleanup_interval,
        heartbeat_interval=app_config.heartbeat_interval,
    )
    return bot, cog


async def async_main() -> int:
    """Start the bot and shut the relay tasks down when it stops.

    Returns
    -------
    int
        Process exit code.
    """
    settings = load_settings()
    bot, cog = create_bot(settings)

    exit_code = 0
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(settings.bot_token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    except discord.LoginFailure as exc:
        logger.critical("Discord rejected the bot token: %s", exc)
        exit_code = 1
    finally:
        await cog.shutdown()
        if not bot.is_closed():
            await bot.close()
        logger.info("Shutdown complete.")

    return exit_code


def main() -> int:
    """Entrypoint for the ``commandless-discord`` console script."""
    sys.excepthook = handle_exception
    silence_noisy_loggers()
    logger.info("Starting Commandless relay bot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
