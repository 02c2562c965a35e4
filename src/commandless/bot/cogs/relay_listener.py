"""Relay listener Cog for Commandless.

This cog connects a py-cord bot to the Commandless relay: it loads the bot's
relay config when the gateway is ready, gates every message through the
config cache's admission pipeline, forwards admitted messages and slash-command
interactions to the relay and carries out the reply in the relay's decision.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

import discord
from discord.ext import commands

from commandless.cache.config_cache import ConfigCache
from commandless.cache.policy import is_triggered
from commandless.datatypes.discord_datatypes import MessageContext
from commandless.datatypes.relay_datatypes import (
    CommandAction,
    Decision,
    InteractionCreateEvent,
    MessageCreateEvent,
)
from commandless.errors import RelayError
from commandless.relay.relay_client import RelayClient
from commandless.relay.signing import now_unix_ms
from commandless.scheduler.periodic_task import PeriodicTask
from commandless.util.logger import get_logger

logger = get_logger("relay_listener_cog")

DecisionExecutor = Callable[[Decision, discord.Message], Awaitable[None]]
CommandHandler = Callable[[CommandAction, discord.Message], Awaitable[None]]


class RelayListenerCog(commands.Cog):
    """Cog that forwards admitted messages to the relay and applies its decisions."""

    def __init__(
        self,
        discord_bot_instance,
        relay: RelayClient,
        config_cache: Optional[ConfigCache] = None,
        *,
        mention_required: bool = True,
        execute: Optional[DecisionExecutor] = None,
        on_command: Optional[CommandHandler] = None,
        poll_interval: float = 30.0,
        cleanup_interval: float = 300.0,
        heartbeat_interval: float = 30.0,
    ):
        """
        Initialize the relay listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        relay:
            Client used to register the bot and send events.
        config_cache:
            Admission cache; None disables config-based filtering.
        mention_required:
            Require a mention or reply unless the relay config turns it off.
        execute:
            Replaces the default decision handling entirely.
        on_command:
            Receives command actions from the default decision handling.
        """
        self.bot = discord_bot_instance
        self.relay = relay
        self.config_cache = config_cache
        self.mention_required = mention_required
        self._execute = execute
        self._on_command = on_command
        self._poll_interval = poll_interval
        self._cleanup_interval = cleanup_interval
        self._heartbeat = PeriodicTask("relay heartbeat", self.relay.heartbeat, heartbeat_interval)
        self._started = False
        logger.info("Relay listener cog loaded")

    # --------------------------
    # Lifecycle
    # --------------------------
    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Register with the relay, load the config and start background tasks.

        ``on_ready`` fires again after every gateway reconnect; only the first
        call does any work.
        """
        if self._started:
            return
        self._started = True

        user = self.bot.user
        if self.relay.bot_id is None and user is not None:
            await self.relay.register_bot(platform="discord", name=user.name, client_id=str(user.id))

        self._heartbeat.start()

        if self.config_cache is None:
            return
        if self.relay.bot_id is None:
            logger.warning("No bot id available, config filtering disabled")
            return

        logger.info("Fetching config for bot %s...", self.relay.bot_id)
        await self.config_cache.fetch(self.relay.bot_id)
        self.config_cache.start_polling(self.relay.bot_id, self._poll_interval)
        self.config_cache.start_janitor(self._cleanup_interval)

    async def shutdown(self) -> None:
        """Stop heartbeats and config polling and close the relay session."""
        await self._heartbeat.shutdown()
        if self.config_cache is not None:
            await self.config_cache.shutdown()
        await self.relay.close()
        self._started = False

    # --------------------------
    # Helpers
    # --------------------------
    def _filtering_active(self) -> bool:
        return self.config_cache is not None and self.relay.bot_id is not None

    def _is_mentioned(self, message: discord.Message) -> bool:
        user = self.bot.user
        if user is None:
            return False
        return any(mentioned.id == user.id for mentioned in message.mentions)

    async def _is_reply_to_bot(self, message: discord.Message) -> bool:
        """Return True if ``message`` replies to a message this bot sent."""
        user = self.bot.user
        reference = message.reference
        if user is None or reference is None or reference.message_id is None:
            return False

        referenced = reference.resolved
        if not isinstance(referenced, discord.Message):
            try:
                referenced = await message.channel.fetch_message(reference.message_id)
            except discord.HTTPException as exc:
                logger.debug("Could not fetch referenced message %s: %s", reference.message_id, exc)
                return False
        return referenced.author.id == user.id

    def _build_message_event(self, message: discord.Message, is_reply_to_bot: bool) -> MessageCreateEvent:
        user = self.bot.user
        bot_client_id = str(user.id) if user is not None else None
        reference = message.reference
        return MessageCreateEvent(
            id=str(message.id),
            channel_id=str(message.channel.id),
            author_id=str(message.author.id),
            content=message.content,
            timestamp=int(message.created_at.timestamp() * 1000),
            guild_id=str(message.guild.id) if message.guild else None,
            bot_client_id=bot_client_id,
            bot_id=self.relay.bot_id,
            is_reply_to_bot=is_reply_to_bot,
            referenced_message_id=str(reference.message_id) if reference and reference.message_id else None,
            referenced_message_author_id=bot_client_id if is_reply_to_bot else None,
        )

    async def execute_decision(self, decision: Decision, message: discord.Message) -> None:
        """
        Apply a relay decision to the message it answers.

        A custom ``execute`` callback takes over completely. Otherwise a reply
        action is posted as a reply and a command action goes to ``on_command``.
        """
        if self._execute is not None:
            await self._execute(decision, message)
            return

        reply = decision.reply
        if reply is not None and reply.content:
            await message.reply(content=reply.content)

        command = decision.command
        if command is not None:
            if self._on_command is None:
                logger.debug("No command handler registered; ignoring command %s", command.slash or command.name)
                return
            await self._on_command(command, message)

    # --------------------------
    # Listeners
    # --------------------------
    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        """
        Gate a new message through the config cache and forward it to the relay.

        This handler:
        1. Ignores bot authors
        2. Runs the admission pipeline (channel, permissions, rate limits)
        3. Applies the trigger policy (mention, reply, prefix)
        4. Sends the event and applies the returned decision
        """
        if message.author.bot:
            return

        if self._filtering_active():
            ctx = MessageContext.create(
                channel_id=message.channel.id,
                author_id=message.author.id,
                guild_id=message.guild.id if message.guild else None,
                member_roles=[role.id for role in getattr(message.author, "roles", [])],
            )
            verdict = self.config_cache.should_process_message(ctx)
            if not verdict.allowed:
                logger.debug("Message %s filtered: %s", message.id, verdict.reason)
                return

        config = self.config_cache.get_config() if self.config_cache is not None else None
        is_reply_to_bot = await self._is_reply_to_bot(message)
        if not is_triggered(
            config,
            content=message.content or "",
            mentioned=self._is_mentioned(message),
            is_reply_to_bot=is_reply_to_bot,
            mention_required=self.mention_required,
        ):
            return

        event = self._build_message_event(message, is_reply_to_bot)
        try:
            async with message.channel.typing():
                decision = await self.relay.send_event(event)
            if decision is not None:
                await self.execute_decision(decision, message)
        except RelayError as exc:
            logger.warning("Relay failed for message %s: %s", message.id, exc)
        except discord.HTTPException as exc:
            logger.error("Failed to apply decision for message %s: %s", message.id, exc)

    @commands.Cog.listener(name="on_interaction")
    async def on_interaction(self, interaction: discord.Interaction):
        """Forward slash-command interactions to the relay and send its reply."""
        if interaction.type is not discord.InteractionType.application_command or interaction.user is None:
            return

        if self._filtering_active() and interaction.channel_id is not None:
            ctx = MessageContext.create(
                channel_id=interaction.channel_id,
                author_id=interaction.user.id,
                guild_id=interaction.guild_id,
                member_roles=[role.id for role in getattr(interaction.user, "roles", [])],
            )
            verdict = self.config_cache.should_process_message(ctx)
            if not verdict.allowed:
                logger.debug("Interaction %s filtered: %s", interaction.id, verdict.reason)
                return

        data: Dict[str, Any] = interaction.data or {}
        options = {
            option["name"]: option.get("value")
            for option in data.get("options", [])
            if isinstance(option, dict) and "name" in option
        }
        event = InteractionCreateEvent(
            id=str(interaction.id),
            user_id=str(interaction.user.id),
            name=str(data.get("name", "")),
            timestamp=now_unix_ms(),
            guild_id=str(interaction.guild_id) if interaction.guild_id else None,
            channel_id=str(interaction.channel_id) if interaction.channel_id else None,
            options=options,
            bot_id=self.relay.bot_id,
        )

        try:
            decision = await self.relay.send_event(event)
            reply = decision.reply if decision is not None else None
            if reply is not None and reply.content and not interaction.response.is_done():
                await interaction.response.send_message(reply.content, ephemeral=reply.ephemeral)
        except RelayError as exc:
            logger.warning("Relay failed for interaction %s: %s", interaction.id, exc)
        except discord.HTTPException as exc:
            logger.error("Failed to reply to interaction %s: %s", interaction.id, exc)


def setup(discord_bot_instance, relay: RelayClient, config_cache: Optional[ConfigCache] = None, **options) -> RelayListenerCog:
    """
    Register the RelayListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    relay:
        Relay client shared with the rest of the bot.
    config_cache:
        Admission cache; None disables config-based filtering.
    **options:
        Forwarded to :class:`RelayListenerCog`.

    Returns
    -------
    RelayListenerCog
        The registered cog, so callers can shut it down later.
    """
    cog = RelayListenerCog(discord_bot_instance, relay, config_cache, **options)
    discord_bot_instance.add_cog(cog)
    return cog
