"""
Normalized identifiers and message context handed from platform adapters to the cache.

Discord snowflakes arrive as ints from py-cord and as strings from the relay's
JSON, sometimes with stray whitespace from the dashboard. Every identifier is
normalized to a trimmed string before any comparison so both representations
match.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

Snowflake = Union[str, int]


def normalize_snowflake(value: Optional[Snowflake]) -> str:
    """
    Convert an identifier to its canonical string form.

    Args:
        value: The identifier as an int, a string, or None.

    Returns:
        str: ``str(value).strip()``, or an empty string for None.

    Example:
        >>> normalize_snowflake(123456789012345678)
        '123456789012345678'
        >>> normalize_snowflake(" 123456789012345678 ")
        '123456789012345678'
    """
    if value is None:
        return ""
    return str(value).strip()


def normalize_snowflakes(values: Optional[Iterable[Snowflake]]) -> frozenset[str]:
    """Normalize a collection of identifiers, dropping blanks."""
    if not values:
        return frozenset()
    if isinstance(values, (str, bytes)):
        raise TypeError(f"expected a list of identifiers, got {type(values).__name__}")
    return frozenset(ident for ident in (normalize_snowflake(v) for v in values) if ident)


@dataclass(frozen=True, slots=True)
class MessageContext:
    """
    Per-event record evaluated by the admission pipeline.

    Attributes:
        channel_id: Channel the message was posted in.
        author_id: User who sent the message.
        guild_id: Guild the channel belongs to, or None for direct messages.
        member_roles: Role identifiers held by the author in that guild.
    """

    channel_id: str
    author_id: str
    guild_id: Optional[str] = None
    member_roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def create(
        cls,
        channel_id: Snowflake,
        author_id: Snowflake,
        guild_id: Optional[Snowflake] = None,
        member_roles: Optional[Iterable[Snowflake]] = None,
    ) -> "MessageContext":
        """Build a context from raw identifiers, normalizing each one."""
        guild = normalize_snowflake(guild_id)
        return cls(
            channel_id=normalize_snowflake(channel_id),
            author_id=normalize_snowflake(author_id),
            guild_id=guild or None,
            member_roles=normalize_snowflakes(member_roles),
        )


@dataclass(frozen=True, slots=True)
class AdmissionVerdict:
    """Outcome of one admission check; ``reason`` is set only on denial."""

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "AdmissionVerdict":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "AdmissionVerdict":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed
