"""
Pure admission checks over a ``BotConfig`` snapshot.

Each check returns an ``AdmissionVerdict`` and has no side effects, so the
cache can run them in a fixed order and stop at the first denial. All ids are
already normalized to trimmed strings by ``BotConfig`` and ``MessageContext``.
"""

from __future__ import annotations

from typing import AbstractSet, Optional

from commandless.datatypes.bot_config import BotConfig, ChannelMode, PermissionMode, TriggerMode
from commandless.datatypes.discord_datatypes import AdmissionVerdict, MessageContext, normalize_snowflake


def is_premium(config: BotConfig, author_id: str, member_roles: AbstractSet[str]) -> bool:
    """Return True if the author holds a premium role or is listed as a premium user."""
    if not member_roles.isdisjoint(config.premium_role_ids):
        return True
    return normalize_snowflake(author_id) in config.premium_user_ids


def check_channel(config: BotConfig, channel_id: str) -> AdmissionVerdict:
    channel_id = normalize_snowflake(channel_id)
    if config.channel_mode is ChannelMode.WHITELIST and channel_id not in config.enabled_channels:
        return AdmissionVerdict.deny("Channel not whitelisted")
    if config.channel_mode is ChannelMode.BLACKLIST and channel_id in config.disabled_channels:
        return AdmissionVerdict.deny("Channel blacklisted")
    return AdmissionVerdict.allow()


def check_permissions(config: BotConfig, author_id: str, member_roles: AbstractSet[str]) -> AdmissionVerdict:
    """
    Apply the user blacklist, then the permission mode.

    A user in ``disabled_users`` is denied under every mode, including ``all``.
    """
    author_id = normalize_snowflake(author_id)
    if author_id in config.disabled_users:
        return AdmissionVerdict.deny("User blacklisted")

    mode = config.permission_mode
    if mode is PermissionMode.PREMIUM_ONLY:
        if not is_premium(config, author_id, member_roles):
            return AdmissionVerdict.deny("Premium only")
    elif mode is PermissionMode.WHITELIST:
        has_enabled_role = not member_roles.isdisjoint(config.enabled_roles)
        if not has_enabled_role and author_id not in config.enabled_users:
            return AdmissionVerdict.deny("No required role")
    elif mode is PermissionMode.BLACKLIST:
        if not member_roles.isdisjoint(config.disabled_roles):
            return AdmissionVerdict.deny("Role blacklisted")

    return AdmissionVerdict.allow()


def check_policy(config: BotConfig, ctx: MessageContext) -> AdmissionVerdict:
    """Run the stateless part of the pipeline: master switch, channel, permissions."""
    if not config.enabled:
        return AdmissionVerdict.deny("Bot disabled")

    verdict = check_channel(config, ctx.channel_id)
    if not verdict.allowed:
        return verdict

    return check_permissions(config, ctx.author_id, ctx.member_roles)


def is_triggered(
    config: Optional[BotConfig],
    *,
    content: str,
    mentioned: bool,
    is_reply_to_bot: bool,
    mention_required: bool = True,
) -> bool:
    """
    Decide whether an admitted message activates the bot.

    ``mention_required`` is the adapter's own option; the bot needs a mention
    (or a reply to one of its messages) only when both it and the config ask
    for one. In ``prefix`` mode a message starting with the custom prefix also
    triggers; ``always`` mode triggers on every message.
    """
    addressed = mentioned or is_reply_to_bot
    if config is None:
        return addressed or not mention_required

    if config.trigger_mode is TriggerMode.ALWAYS:
        return True
    if config.trigger_mode is TriggerMode.PREFIX and config.custom_prefix:
        if content.lstrip().startswith(config.custom_prefix):
            return True

    if config.mention_required and mention_required:
        return addressed
    return True
