"""
Versioned per-bot configuration snapshot served by the relay.

The relay returns the configuration as camelCase JSON. ``BotConfig.from_payload``
turns that into an immutable snapshot; identifier lists become frozensets of
trimmed strings so that admission checks never depend on whether the dashboard
stored an id as a number or a string. Defaults mirror the relay's column
defaults for fields an older relay may omit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from commandless.datatypes.discord_datatypes import normalize_snowflakes
from commandless.errors import ConfigPayloadError


class ChannelMode(str, Enum):
    """Which channels the bot listens in."""

    ALL = "all"
    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"

    def __str__(self) -> str:
        return self.value


class PermissionMode(str, Enum):
    """Which users may trigger the bot."""

    ALL = "all"
    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"
    PREMIUM_ONLY = "premium_only"

    def __str__(self) -> str:
        return self.value


class CommandMode(str, Enum):
    ALL = "all"
    CATEGORY_BASED = "category_based"
    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"

    def __str__(self) -> str:
        return self.value


class TriggerMode(str, Enum):
    """How a message activates the bot."""

    MENTION = "mention"
    PREFIX = "prefix"
    ALWAYS = "always"

    def __str__(self) -> str:
        return self.value


class ResponseStyle(str, Enum):
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"
    MINIMAL = "minimal"

    def __str__(self) -> str:
        return self.value


DEFAULT_COMMAND_CATEGORIES = ("moderation", "utility", "fun", "economy")
DEFAULT_DANGEROUS_COMMANDS = ("ban", "kick", "purge", "nuke")


@dataclass(frozen=True, slots=True)
class BotConfig:
    """Immutable configuration snapshot for one bot.

    Attributes:
        version: Server-side monotonic config version.
        enabled: Master switch; when False every event is denied.
        channel_mode: Channel admission mode, paired with the channel sets.
        permission_mode: User admission mode, paired with the role/user sets.
        premium_role_ids: Roles that make a member premium.
        premium_user_ids: Users that are premium regardless of roles.
        command_mode: Command filtering mode (enforced by the relay).
        mention_required: Whether the adapter requires a mention or reply.
        custom_prefix: Prefix used when ``trigger_mode`` is ``prefix``.
        free_rate_limit: Requests per hour for regular users.
        premium_rate_limit: Requests per hour for premium users.
        server_rate_limit: Requests per hour for a whole guild.
        confidence_threshold: Passed through to decisioning.
    """

    version: int
    enabled: bool = True
    channel_mode: ChannelMode = ChannelMode.ALL
    enabled_channels: frozenset[str] = field(default_factory=frozenset)
    disabled_channels: frozenset[str] = field(default_factory=frozenset)
    permission_mode: PermissionMode = PermissionMode.ALL
    enabled_roles: frozenset[str] = field(default_factory=frozenset)
    disabled_roles: frozenset[str] = field(default_factory=frozenset)
    enabled_users: frozenset[str] = field(default_factory=frozenset)
    disabled_users: frozenset[str] = field(default_factory=frozenset)
    premium_role_ids: frozenset[str] = field(default_factory=frozenset)
    premium_user_ids: frozenset[str] = field(default_factory=frozenset)
    command_mode: CommandMode = CommandMode.ALL
    enabled_command_categories: tuple[str, ...] = DEFAULT_COMMAND_CATEGORIES
    disabled_commands: tuple[str, ...] = ()
    mention_required: bool = True
    custom_prefix: Optional[str] = None
    trigger_mode: TriggerMode = TriggerMode.MENTION
    free_rate_limit: int = 10
    premium_rate_limit: int = 50
    server_rate_limit: int = 100
    confidence_threshold: float = 0.7
    require_confirmation: bool = False
    dangerous_commands: tuple[str, ...] = DEFAULT_DANGEROUS_COMMANDS
    response_style: ResponseStyle = ResponseStyle.FRIENDLY

    @classmethod
    def from_payload(cls, payload: Any) -> "BotConfig":
        """
        Parse a relay config response body.

        Args:
            payload: Decoded JSON body of ``GET /v1/relay/config``.

        Returns:
            BotConfig: The parsed snapshot.

        Raises:
            ConfigPayloadError: If the body is not an object, has no usable
                ``version``, or carries an unknown mode or a non-numeric or
                non-finite limit.
        """
        if not isinstance(payload, Mapping):
            raise ConfigPayloadError(f"Config payload must be an object, got {type(payload).__name__}")
        if payload.get("version") is None:
            raise ConfigPayloadError("Config payload has no version")

        try:
            return cls(
                version=int(payload["version"]),
                enabled=bool(payload.get("enabled", True)),
                channel_mode=ChannelMode(payload.get("channelMode") or ChannelMode.ALL),
                enabled_channels=normalize_snowflakes(payload.get("enabledChannels")),
                disabled_channels=normalize_snowflakes(payload.get("disabledChannels")),
                permission_mode=PermissionMode(payload.get("permissionMode") or PermissionMode.ALL),
                enabled_roles=normalize_snowflakes(payload.get("enabledRoles")),
                disabled_roles=normalize_snowflakes(payload.get("disabledRoles")),
                enabled_users=normalize_snowflakes(payload.get("enabledUsers")),
                disabled_users=normalize_snowflakes(payload.get("disabledUsers")),
                premium_role_ids=normalize_snowflakes(payload.get("premiumRoleIds")),
                premium_user_ids=normalize_snowflakes(payload.get("premiumUserIds")),
                command_mode=CommandMode(payload.get("commandMode") or CommandMode.ALL),
                enabled_command_categories=_string_tuple(
                    payload.get("enabledCommandCategories"), DEFAULT_COMMAND_CATEGORIES
                ),
                disabled_commands=_string_tuple(payload.get("disabledCommands"), ()),
                mention_required=bool(payload.get("mentionRequired", True)),
                custom_prefix=payload.get("customPrefix") or None,
                trigger_mode=TriggerMode(payload.get("triggerMode") or TriggerMode.MENTION),
                free_rate_limit=int(payload.get("freeRateLimit", 10)),
                premium_rate_limit=int(payload.get("premiumRateLimit", 50)),
                server_rate_limit=int(payload.get("serverRateLimit", 100)),
                confidence_threshold=float(payload.get("confidenceThreshold", 0.7)),
                require_confirmation=bool(payload.get("requireConfirmation", False)),
                dangerous_commands=_string_tuple(payload.get("dangerousCommands"), DEFAULT_DANGEROUS_COMMANDS),
                response_style=ResponseStyle(payload.get("responseStyle") or ResponseStyle.FRIENDLY),
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise ConfigPayloadError(f"Invalid config payload: {exc}") from exc

    def to_payload(self) -> dict[str, Any]:
        """Serialize back to the relay's camelCase wire shape."""
        return {
            "version": self.version,
            "enabled": self.enabled,
            "channelMode": self.channel_mode.value,
            "enabledChannels": sorted(self.enabled_channels),
            "disabledChannels": sorted(self.disabled_channels),
            "permissionMode": self.permission_mode.value,
            "enabledRoles": sorted(self.enabled_roles),
            "disabledRoles": sorted(self.disabled_roles),
            "enabledUsers": sorted(self.enabled_users),
            "disabledUsers": sorted(self.disabled_users),
            "premiumRoleIds": sorted(self.premium_role_ids),
            "premiumUserIds": sorted(self.premium_user_ids),
            "commandMode": self.command_mode.value,
            "enabledCommandCategories": list(self.enabled_command_categories),
            "disabledCommands": list(self.disabled_commands),
            "mentionRequired": self.mention_required,
            "customPrefix": self.custom_prefix,
            "triggerMode": self.trigger_mode.value,
            "freeRateLimit": self.free_rate_limit,
            "premiumRateLimit": self.premium_rate_limit,
            "serverRateLimit": self.server_rate_limit,
            "confidenceThreshold": self.confidence_threshold,
            "requireConfirmation": self.require_confirmation,
            "dangerousCommands": list(self.dangerous_commands),
            "responseStyle": self.response_style.value,
        }


def _string_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
        raise TypeError(f"expected a list of strings, got {type(value).__name__}")
    return tuple(str(item).strip() for item in value if str(item).strip())
