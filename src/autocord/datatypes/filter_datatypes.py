"""
Content filter definitions (moderation-style rule sets).

A ContentFilter holds the ordered filter rules for one channel, or for the
whole guild when ``channel_id`` is ``"*"``. Unlike automation rules, a filter
stops at the first violation it finds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

from autocord.engine.errors import ConfigurationError

GUILD_WIDE = "*"


class FilterKind(Enum):
    MUST_CONTAIN_AUDIO = "must_contain_audio"
    MUST_CONTAIN_IMAGE = "must_contain_image"
    MUST_CONTAIN_VIDEO = "must_contain_video"
    MUST_CONTAIN_FILE = "must_contain_file"
    BLOCKED_DOMAINS = "blocked_domains"
    REQUIRED_TEXT = "required_text"
    BLOCKED_TEXT = "blocked_text"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    BLOCK_LARGE_FILES = "block_large_files"

    @property
    def display(self) -> str:
        return self.value.replace("_", " ").title()


class FilterResponse(Enum):
    DELETE = "delete"
    DELETE_AND_DM = "delete_and_dm"


@dataclass(frozen=True, slots=True)
class FilterRule:
    """
    One content check.

    ``texts`` serves required_text/blocked_text, ``domains`` blocked_domains,
    ``length`` min_length/max_length and ``max_size_bytes`` block_large_files.
    """

    id: str
    kind: FilterKind
    response: FilterResponse = FilterResponse.DELETE
    custom_message: str | None = None
    texts: Tuple[str, ...] = ()
    domains: Tuple[str, ...] = ()
    length: int | None = None
    max_size_bytes: int | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "action": self.response.value,
            "customMessage": self.custom_message,
            "texts": list(self.texts),
            "domains": list(self.domains),
            "length": self.length,
            "maxSize": self.max_size_bytes,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], position: int = 0) -> "FilterRule":
        try:
            kind = FilterKind(data.get("type"))
        except ValueError:
            raise ConfigurationError(f"Unknown filter rule type {data.get('type')!r}") from None
        action = data.get("action") or "delete"
        # "dm" on its own still deletes; the primary effect is never skipped
        if action == "dm":
            action = "delete_and_dm"
        try:
            response = FilterResponse(action)
        except ValueError:
            raise ConfigurationError(f"Unknown filter response {action!r}") from None
        length = data.get("length")
        max_size = data.get("maxSize", data.get("max_size_bytes"))
        return cls(
            id=str(data.get("id") or f"{kind.value}-{position}"),
            kind=kind,
            response=response,
            custom_message=data.get("customMessage") or None,
            texts=tuple(str(t) for t in data.get("texts") or ()),
            domains=tuple(str(d) for d in data.get("domains") or ()),
            length=int(length) if length is not None else None,
            max_size_bytes=int(max_size) if max_size is not None else None,
        )


@dataclass(frozen=True, slots=True)
class ContentFilter:
    guild_id: str
    channel_id: str = GUILD_WIDE
    enabled: bool = True
    log_channel_id: str | None = None
    rules: Tuple[FilterRule, ...] = ()

    @property
    def key(self) -> str:
        return f"{self.guild_id}:{self.channel_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guildId": self.guild_id,
            "channelId": self.channel_id,
            "enabled": self.enabled,
            "logChannelId": self.log_channel_id,
            "rules": [rule.to_dict() for rule in self.rules],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ContentFilter":
        return cls(
            guild_id=str(data["guildId"]),
            channel_id=str(data.get("channelId") or GUILD_WIDE),
            enabled=bool(data.get("enabled", True)),
            log_channel_id=str(data["logChannelId"]) if data.get("logChannelId") else None,
            rules=tuple(FilterRule.from_dict(r, i) for i, r in enumerate(data.get("rules") or ())),
        )


@dataclass(frozen=True, slots=True)
class Violation:
    """What a filter rule found wrong with a message."""

    kind: str
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ViolationRecord:
    """
    Append-only audit entry for a filtered message.

    ``rule_kind`` is the filter kind and ``detail`` carries the violation
    specifics (``fileSize``, ``domain``, ``blockedText``...).
    """

    guild_id: str
    rule_id: str
    actor_id: str
    timestamp_ms: int
    rule_kind: str
    detail: Dict[str, Any] = field(default_factory=dict)
    channel_id: str | None = None
    message_id: str | None = None
