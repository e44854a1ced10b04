"""
Normalized inbound events.

The py-cord listener turns gateway events into these plain records so the
engine never touches discord.py objects directly. Every identifier is a
string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union


class EventKind(Enum):
    MESSAGE = "message"
    EVENT = "event"
    REACTION_ADD = "reactionAdd"
    REACTION_REMOVE = "reactionRemove"


@dataclass(frozen=True, slots=True)
class Actor:
    """The member whose action produced the event."""

    id: str
    name: str = ""
    display_name: str = ""
    avatar_url: str = ""
    role_ids: frozenset[str] = frozenset()
    is_admin: bool = False
    is_bot: bool = False

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"


@dataclass(frozen=True, slots=True)
class GuildInfo:
    id: str
    name: str = ""
    member_count: int = 0
    icon_url: str | None = None


@dataclass(frozen=True, slots=True)
class ChannelInfo:
    id: str
    name: str = ""

    @property
    def mention(self) -> str:
        return f"<#{self.id}>"


@dataclass(frozen=True, slots=True)
class Attachment:
    filename: str
    size: int
    url: str = ""
    content_type: str | None = None

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return ext.lower() if dot else ""


@dataclass(frozen=True, slots=True)
class MessagePayload:
    content: str
    message_id: str | None = None
    attachments: Tuple[Attachment, ...] = ()


@dataclass(frozen=True, slots=True)
class EventPayload:
    event_name: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ReactionEmoji:
    """
    A reaction emoji in all three forms a trigger may name it by.

    Attributes:
        name: Unicode character or custom emoji name.
        id: Custom emoji snowflake, None for unicode emoji.
        text: Canonical string form, ``<:name:id>`` for custom emoji.
    """

    name: str
    id: str | None = None
    text: str = ""

    @property
    def canonical(self) -> str:
        if self.text:
            return self.text
        if self.id:
            return f"<:{self.name}:{self.id}>"
        return self.name


@dataclass(frozen=True, slots=True)
class ReactionPayload:
    emoji: ReactionEmoji
    message_id: str | None = None


Payload = Union[MessagePayload, EventPayload, ReactionPayload]


@dataclass(frozen=True, slots=True)
class InboundEvent:
    """One gateway event, as seen by the engine."""

    kind: EventKind
    guild: GuildInfo
    actor: Actor
    payload: Payload
    channel: ChannelInfo | None = None

    @property
    def guild_id(self) -> str:
        return self.guild.id

    @property
    def channel_id(self) -> str | None:
        return self.channel.id if self.channel else None

    @property
    def message_id(self) -> str | None:
        if isinstance(self.payload, (MessagePayload, ReactionPayload)):
            return self.payload.message_id
        return None

    def payload_tree(self) -> Dict[str, Any]:
        """Template-friendly view of the payload (the ``event.*`` namespace)."""
        match self.payload:
            case MessagePayload(content=content, message_id=message_id, attachments=attachments):
                return {
                    "content": content,
                    "messageId": message_id,
                    "attachments": [a.filename for a in attachments],
                }
            case EventPayload(event_name=name, data=data):
                return {"name": name, **dict(data)}
            case ReactionPayload(emoji=emoji, message_id=message_id):
                return {"emoji": emoji.canonical, "messageId": message_id}
        return {}
