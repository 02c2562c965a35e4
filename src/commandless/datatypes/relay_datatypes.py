"""
Wire types exchanged with the Commandless relay.

Events are serialized to the relay's camelCase JSON; decisions are parsed from
the ``{"decision": ...}`` body of ``POST /v1/relay/events``. Unknown action kinds
are dropped rather than rejected so an older SDK keeps working when the relay
adds new ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(slots=True)
class HttpResponse(Generic[T]):
    """Result of one relay HTTP call. Transport helpers never raise; they return this."""

    ok: bool
    status: int
    data: Optional[T] = None
    error: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(slots=True)
class MessageCreateEvent:
    """A chat message forwarded to the relay."""

    id: str
    channel_id: str
    author_id: str
    content: str
    timestamp: int
    guild_id: Optional[str] = None
    bot_client_id: Optional[str] = None
    bot_id: Optional[str] = None
    is_reply_to_bot: bool = False
    referenced_message_id: Optional[str] = None
    referenced_message_author_id: Optional[str] = None

    type: str = field(default="messageCreate", init=False)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "id": self.id,
            "channelId": self.channel_id,
            "authorId": self.author_id,
            "content": self.content,
            "timestamp": self.timestamp,
            "isReplyToBot": self.is_reply_to_bot,
        }
        optional = {
            "guildId": self.guild_id,
            "botClientId": self.bot_client_id,
            "botId": self.bot_id,
            "referencedMessageId": self.referenced_message_id,
            "referencedMessageAuthorId": self.referenced_message_author_id,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(slots=True)
class InteractionCreateEvent:
    """A slash-command interaction forwarded to the relay."""

    id: str
    user_id: str
    name: str
    timestamp: int
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    bot_id: Optional[str] = None

    type: str = field(default="interactionCreate", init=False)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "options": dict(self.options),
            "timestamp": self.timestamp,
        }
        optional = {"guildId": self.guild_id, "channelId": self.channel_id, "botId": self.bot_id}
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


RelayEvent = Union[MessageCreateEvent, InteractionCreateEvent]


@dataclass(slots=True)
class ReplyAction:
    content: str
    ephemeral: bool = False

    kind: str = field(default="reply", init=False)


@dataclass(slots=True)
class CommandAction:
    slash: str
    name: Optional[str] = None
    args: Dict[str, Any] = field(default_factory=dict)
    simulate: bool = False

    kind: str = field(default="command", init=False)


DecisionAction = Union[ReplyAction, CommandAction]


@dataclass(slots=True)
class Decision:
    """The relay's answer for one event."""

    id: str
    intent: str
    confidence: float
    params: Dict[str, Any] = field(default_factory=dict)
    blocked: bool = False
    block_reasons: List[str] = field(default_factory=list)
    next_step: Optional[str] = None
    actions: List[DecisionAction] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Decision":
        """
        Parse the ``decision`` object of an events response.

        Raises:
            TypeError, ValueError: If a field has the wrong shape, such as a
                non-numeric ``confidence`` or a ``safety`` that is not an object.
        """
        safety = payload.get("safety") or {}
        if not isinstance(safety, Mapping):
            raise TypeError(f"decision safety must be an object, got {type(safety).__name__}")
        actions: List[DecisionAction] = []
        for raw in payload.get("actions") or []:
            if not isinstance(raw, Mapping):
                continue
            kind = raw.get("kind")
            if kind == "reply":
                actions.append(ReplyAction(content=str(raw.get("content", "")), ephemeral=bool(raw.get("ephemeral", False))))
            elif kind == "command":
                actions.append(
                    CommandAction(
                        slash=str(raw.get("slash") or "").strip(),
                        name=raw.get("name"),
                        args=dict(raw.get("args") or {}),
                        simulate=bool(raw.get("simulate", False)),
                    )
                )
        return cls(
            id=str(payload.get("id", "")),
            intent=str(payload.get("intent", "")),
            confidence=float(payload.get("confidence", 0.0)),
            params=dict(payload.get("params") or {}),
            blocked=bool(safety.get("blocked", False)),
            block_reasons=list(safety.get("reasons") or []),
            next_step=payload.get("next_step"),
            actions=actions,
        )

    @property
    def reply(self) -> Optional[ReplyAction]:
        """First reply action, if any."""
        return next((a for a in self.actions if isinstance(a, ReplyAction)), None)

    @property
    def command(self) -> Optional[CommandAction]:
        """First command action, if any."""
        return next((a for a in self.actions if isinstance(a, CommandAction)), None)
