import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from commandless.bot.cogs import relay_listener
from commandless.cache.config_cache import ConfigCache
from commandless.configuration.relay_settings import RelayCredentials
from commandless.datatypes.relay_datatypes import (
    CommandAction,
    Decision,
    HttpResponse,
    InteractionCreateEvent,
    MessageCreateEvent,
    ReplyAction,
)
from commandless.errors import RelayError

BOT_USER_ID = 999


class FakeTyping:
    def __init__(self):
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeChannel:
    def __init__(self, channel_id=100):
        self.id = channel_id
        self.typing_context = FakeTyping()
        self.fetch_message = AsyncMock()

    def typing(self):
        return self.typing_context


class FakeMessage:
    def __init__(
        self,
        *,
        content="",
        author_id=1,
        bot=False,
        roles=(),
        guild_id=10,
        channel=None,
        mentions=(),
        reference=None,
        message_id=555,
    ):
        self.id = message_id
        self.content = content
        self.author = SimpleNamespace(id=author_id, bot=bot, roles=[SimpleNamespace(id=r) for r in roles])
        self.guild = SimpleNamespace(id=guild_id) if guild_id is not None else None
        self.channel = channel or FakeChannel()
        self.mentions = list(mentions)
        self.reference = reference
        self.created_at = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
        self.reply = AsyncMock()


class FakeRelay:
    def __init__(self, bot_id="87", decision=None):
        self.bot_id = bot_id
        self.send_event = AsyncMock(return_value=decision)
        self.heartbeat = AsyncMock(return_value={"ok": True})
        self.close = AsyncMock()

        async def register_bot(**kwargs):
            self.bot_id = "87"
            return self.bot_id

        self.register_bot = AsyncMock(side_effect=register_bot)


def reply_decision(content="Done!") -> Decision:
    return Decision(id="d1", intent="reply", confidence=0.9, actions=[ReplyAction(content=content)])


def mention() -> SimpleNamespace:
    return SimpleNamespace(id=BOT_USER_ID)


@pytest.fixture
def fake_bot():
    return SimpleNamespace(user=SimpleNamespace(id=BOT_USER_ID, name="Helper"), add_cog=MagicMock())


@pytest.fixture
def loaded_cache(clock, config_payload):
    async def build(**overrides):
        async def transport(url, headers, params):
            return HttpResponse(ok=True, status=200, data=config_payload(**overrides))

        cache = ConfigCache("https://relay.test", RelayCredentials(api_key="ck_test"), fetch_json=transport, clock=clock)
        await cache.fetch("87")
        return cache

    return build


@pytest.mark.asyncio
async def test_on_message_ignores_bots(fake_bot):
    relay = FakeRelay(decision=reply_decision())
    cog = relay_listener.RelayListenerCog(fake_bot, relay)

    await cog.on_message(FakeMessage(content="hi", bot=True, mentions=[mention()]))

    relay.send_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_message_requires_mention(fake_bot, loaded_cache):
    relay = FakeRelay(decision=reply_decision())
    cog = relay_listener.RelayListenerCog(fake_bot, relay, await loaded_cache())

    await cog.on_message(FakeMessage(content="ban bob"))

    relay.send_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_message_forwards_mention_and_replies(fake_bot, loaded_cache):
    relay = FakeRelay(decision=reply_decision("Banning bob"))
    cog = relay_listener.RelayListenerCog(fake_bot, relay, await loaded_cache())
    message = FakeMessage(content="<@999> ban bob", mentions=[mention()])

    await cog.on_message(message)

    relay.send_event.assert_awaited_once()
    event = relay.send_event.await_args.args[0]
    assert isinstance(event, MessageCreateEvent)
    assert event.id == "555"
    assert event.channel_id == "100"
    assert event.guild_id == "10"
    assert event.bot_client_id == "999"
    assert event.bot_id == "87"
    assert event.timestamp == 1_704_067_200_000
    assert event.is_reply_to_bot is False
    assert message.channel.typing_context.entered == 1
    message.reply.assert_awaited_once_with(content="Banning bob")


@pytest.mark.asyncio
async def test_on_message_denied_by_admission(fake_bot, loaded_cache):
    relay = FakeRelay(decision=reply_decision())
    cache = await loaded_cache(channelMode="blacklist", disabledChannels=["100"])
    cog = relay_listener.RelayListenerCog(fake_bot, relay, cache)

    await cog.on_message(FakeMessage(content="hi", mentions=[mention()]))

    relay.send_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_message_rate_limited_after_free_limit(fake_bot, loaded_cache):
    relay = FakeRelay()
    cog = relay_listener.RelayListenerCog(fake_bot, relay, await loaded_cache(freeRateLimit=2))

    for _ in range(3):
        await cog.on_message(FakeMessage(content="hi", mentions=[mention()]))

    assert relay.send_event.await_count == 2


@pytest.mark.asyncio
async def test_reply_to_bot_counts_as_trigger(fake_bot, loaded_cache):
    relay = FakeRelay()
    cog = relay_listener.RelayListenerCog(fake_bot, relay, await loaded_cache())
    channel = FakeChannel()
    channel.fetch_message.return_value = SimpleNamespace(author=SimpleNamespace(id=BOT_USER_ID))
    message = FakeMessage(
        content="and kick him too",
        channel=channel,
        reference=SimpleNamespace(message_id=444, resolved=None),
    )

    await cog.on_message(message)

    channel.fetch_message.assert_awaited_once_with(444)
    event = relay.send_event.await_args.args[0]
    assert event.is_reply_to_bot is True
    assert event.referenced_message_id == "444"
    assert event.referenced_message_author_id == "999"


@pytest.mark.asyncio
async def test_unfetchable_reference_is_not_a_reply(fake_bot, loaded_cache):
    relay = FakeRelay()
    cog = relay_listener.RelayListenerCog(fake_bot, relay, await loaded_cache())
    channel = FakeChannel()
    channel.fetch_message.side_effect = discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Message")
    message = FakeMessage(content="hello", channel=channel, reference=SimpleNamespace(message_id=444, resolved=None))

    await cog.on_message(message)

    relay.send_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_trigger_always_skips_mention(fake_bot, loaded_cache):
    relay = FakeRelay()
    cog = relay_listener.RelayListenerCog(fake_bot, relay, await loaded_cache(triggerMode="always"))

    await cog.on_message(FakeMessage(content="anyone there?"))

    relay.send_event.assert_awaited_once()


@pytest.mark.asyncio
async def test_relay_error_is_contained(fake_bot):
    relay = FakeRelay()
    relay.send_event.side_effect = RelayError(503, "unavailable")
    cog = relay_listener.RelayListenerCog(fake_bot, relay)
    message = FakeMessage(content="hi", mentions=[mention()])

    await cog.on_message(message)

    message.reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_command_action_goes_to_handler(fake_bot):
    command = CommandAction(slash="/ban user=bob", name="ban", args={"user": "bob"})
    decision = Decision(id="d2", intent="ban", confidence=0.95, actions=[command])
    on_command = AsyncMock()
    cog = relay_listener.RelayListenerCog(fake_bot, FakeRelay(decision=decision), on_command=on_command)
    message = FakeMessage(content="<@999> ban bob", mentions=[mention()])

    await cog.on_message(message)

    on_command.assert_awaited_once_with(command, message)
    message.reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_custom_executor_replaces_default_handling(fake_bot):
    decision = reply_decision()
    execute = AsyncMock()
    cog = relay_listener.RelayListenerCog(fake_bot, FakeRelay(decision=decision), execute=execute)
    message = FakeMessage(content="hi", mentions=[mention()])

    await cog.on_message(message)

    execute.assert_awaited_once_with(decision, message)
    message.reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_ready_registers_and_starts_sync(fake_bot):
    relay = FakeRelay(bot_id=None)
    cache = MagicMock()
    cache.fetch = AsyncMock()
    cache.shutdown = AsyncMock()
    cog = relay_listener.RelayListenerCog(fake_bot, relay, cache, poll_interval=12, cleanup_interval=34)

    await cog.on_ready()
    await cog.on_ready()

    relay.register_bot.assert_awaited_once_with(platform="discord", name="Helper", client_id="999")
    cache.fetch.assert_awaited_once_with("87")
    cache.start_polling.assert_called_once_with("87", 12)
    cache.start_janitor.assert_called_once_with(34)

    await cog.shutdown()
    cache.shutdown.assert_awaited_once()
    relay.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_on_ready_without_bot_id_skips_config(fake_bot):
    relay = FakeRelay(bot_id=None)
    relay.register_bot = AsyncMock(return_value=None)
    cache = MagicMock()
    cache.fetch = AsyncMock()
    cache.shutdown = AsyncMock()
    cog = relay_listener.RelayListenerCog(fake_bot, relay, cache)

    await cog.on_ready()
    await cog.shutdown()

    cache.fetch.assert_not_awaited()
    cache.start_polling.assert_not_called()


def make_interaction(*, channel_id=100, interaction_type=None, done=False):
    return SimpleNamespace(
        id=777,
        type=interaction_type or discord.InteractionType.application_command,
        user=SimpleNamespace(id=1, roles=[]),
        guild_id=10,
        channel_id=channel_id,
        data={"name": "ask", "options": [{"name": "question", "value": "hi?"}]},
        response=SimpleNamespace(is_done=MagicMock(return_value=done), send_message=AsyncMock()),
    )


@pytest.mark.asyncio
async def test_on_interaction_forwards_and_replies(fake_bot):
    relay = FakeRelay(decision=Decision(id="d3", intent="reply", confidence=1.0, actions=[ReplyAction("Sure", ephemeral=True)]))
    cog = relay_listener.RelayListenerCog(fake_bot, relay)
    interaction = make_interaction()

    await cog.on_interaction(interaction)

    event = relay.send_event.await_args.args[0]
    assert isinstance(event, InteractionCreateEvent)
    assert event.name == "ask"
    assert event.options == {"question": "hi?"}
    assert event.channel_id == "100"
    interaction.response.send_message.assert_awaited_once_with("Sure", ephemeral=True)


@pytest.mark.asyncio
async def test_on_interaction_ignores_components_and_answered(fake_bot):
    relay = FakeRelay(decision=reply_decision())
    cog = relay_listener.RelayListenerCog(fake_bot, relay)

    await cog.on_interaction(make_interaction(interaction_type=discord.InteractionType.component))
    relay.send_event.assert_not_awaited()

    answered = make_interaction(done=True)
    await cog.on_interaction(answered)
    answered.response.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_on_interaction_gated_by_admission(fake_bot, loaded_cache):
    relay = FakeRelay(decision=reply_decision())
    cache = await loaded_cache(disabledUsers=["1"])
    cog = relay_listener.RelayListenerCog(fake_bot, relay, cache)

    await cog.on_interaction(make_interaction())

    relay.send_event.assert_not_awaited()


def test_setup_adds_cog(fake_bot):
    cog = relay_listener.setup(fake_bot, FakeRelay(), mention_required=False)

    fake_bot.add_cog.assert_called_once_with(cog)
    assert cog.mention_required is False
    assert cog.config_cache is None
