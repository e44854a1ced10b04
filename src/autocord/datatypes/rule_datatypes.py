"""
Rule definitions: triggers, conditions and actions.

Triggers and actions are closed sets of frozen dataclasses. Each variant
serializes to a dict tagged with ``type``; ``trigger_from_dict`` and
``action_from_dict`` are the only places that map tags back to classes, and
an unknown tag is a ConfigurationError rather than a silently ignored rule.

``from_dict`` also accepts the camelCase keys used by the dashboard's JSON
export (``matchType``, ``aiKeywords``, ``ephemeral``, ``channel``...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from autocord.engine.errors import ConfigurationError


def _pick(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    """Return the first present key among ``names``."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _str_tuple(values: Iterable[Any] | None) -> Tuple[str, ...]:
    return tuple(str(v) for v in (values or ()))


def _enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ConfigurationError(f"Unknown {what} {value!r}") from None


# ==========================================
# Triggers
# ==========================================

class MatchType(Enum):
    """How a message trigger compares its text against message content."""

    EXACT = "exact"
    STARTS_WITH = "startsWith"
    CONTAINS = "contains"
    REGEX = "regex"
    KEYWORD_SET = "keywordSet"

    @classmethod
    def parse(cls, value: Any) -> "MatchType":
        # "ai" is the legacy name for keyword matching
        if value == "ai":
            return cls.KEYWORD_SET
        return _enum(cls, value, "match type")


class ReactionAction(Enum):
    """Which reaction change a reaction trigger listens for."""

    ADD = "add"
    REMOVE = "remove"
    BOTH = "both"


@dataclass(frozen=True, slots=True)
class MessageTrigger:
    """Fires on a posted message whose content matches ``text`` (or ``keywords``)."""

    match_type: MatchType
    text: str = ""
    keywords: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "message",
            "matchType": self.match_type.value,
            "text": self.text,
            "keywords": list(self.keywords),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MessageTrigger":
        return cls(
            match_type=MatchType.parse(_pick(data, "matchType", "match_type", default="contains")),
            text=str(_pick(data, "text", default="")),
            keywords=_str_tuple(_pick(data, "keywords", "aiKeywords")),
        )


@dataclass(frozen=True, slots=True)
class EventTrigger:
    """Fires on a named platform event such as ``guildMemberAdd``."""

    event_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "event", "event": self.event_name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EventTrigger":
        name = _pick(data, "event", "event_name", "eventName")
        if not name:
            raise ConfigurationError("Event trigger has no event name")
        return cls(event_name=str(name))


@dataclass(frozen=True, slots=True)
class ReactionTrigger:
    """Fires when ``emoji`` is added to or removed from a message."""

    emoji: str
    action: ReactionAction = ReactionAction.BOTH
    channel_scope: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "reaction",
            "emoji": self.emoji,
            "action": self.action.value,
            "channel": self.channel_scope,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReactionTrigger":
        emoji = _pick(data, "emoji", "emoji_key", "emojiKey")
        if not emoji:
            raise ConfigurationError("Reaction trigger has no emoji")
        channel = _pick(data, "channel", "channel_scope", "channelScope")
        return cls(
            emoji=str(emoji),
            action=_enum(ReactionAction, _pick(data, "action", default="both"), "reaction action"),
            channel_scope=str(channel) if channel else None,
        )


TriggerSpec = Union[MessageTrigger, EventTrigger, ReactionTrigger]


def trigger_from_dict(data: Mapping[str, Any]) -> TriggerSpec:
    """Build the trigger variant named by ``data["type"]``."""
    match data.get("type"):
        case "message":
            return MessageTrigger.from_dict(data)
        case "event":
            return EventTrigger.from_dict(data)
        case "reaction":
            return ReactionTrigger.from_dict(data)
        case other:
            raise ConfigurationError(f"Unknown trigger type {other!r}")


# ==========================================
# Conditions
# ==========================================

@dataclass(frozen=True, slots=True)
class ConditionSet:
    """
    Who a rule applies to.

    Attributes:
        required_roles: Actor must hold at least one (empty means anyone).
        exempt_roles: Actor holding any of these is skipped; checked first.
        allowed_users: Only these users may fire the rule (empty means anyone).
    """

    required_roles: frozenset[str] = frozenset()
    exempt_roles: frozenset[str] = frozenset()
    allowed_users: frozenset[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roles": sorted(self.required_roles),
            "exemptRoles": sorted(self.exempt_roles),
            "users": sorted(self.allowed_users),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ConditionSet":
        data = data or {}
        return cls(
            required_roles=frozenset(_str_tuple(_pick(data, "roles", "required_roles", "requiredRoles"))),
            exempt_roles=frozenset(_str_tuple(_pick(data, "exemptRoles", "exempt_roles"))),
            allowed_users=frozenset(_str_tuple(_pick(data, "users", "allowed_users", "allowedUsers"))),
        )


# ==========================================
# Actions
# ==========================================

class RoleOperation(Enum):
    ADD = "add"
    REMOVE = "remove"


class VariableScope(Enum):
    PER_USER = "user"
    PER_GUILD = "server"


class ModerateOperation(Enum):
    KICK = "kick"
    BAN = "ban"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class SendMessageAction:
    content: str
    target_channel: str | None = None
    transient: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "message",
            "content": self.content,
            "channel": self.target_channel,
            "ephemeral": self.transient,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SendMessageAction":
        channel = _pick(data, "channel", "target_channel", "targetChannel")
        return cls(
            content=str(_pick(data, "content", default="")),
            target_channel=str(channel) if channel else None,
            transient=bool(_pick(data, "ephemeral", "transient", default=False)),
        )


@dataclass(frozen=True, slots=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True, slots=True)
class SendEmbedAction:
    title: str | None = None
    body: str | None = None
    color: str | None = None
    fields: Tuple[EmbedField, ...] = ()
    target_channel: str | None = None
    footer: str | None = None
    thumbnail: str | None = None
    image: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "embed",
            "title": self.title,
            "description": self.body,
            "color": self.color,
            "fields": [{"name": f.name, "value": f.value, "inline": f.inline} for f in self.fields],
            "channel": self.target_channel,
            "footer": self.footer,
            "thumbnail": self.thumbnail,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SendEmbedAction":
        fields = tuple(
            EmbedField(name=str(f.get("name", "")), value=str(f.get("value", "")), inline=bool(f.get("inline", False)))
            for f in (data.get("fields") or ())
        )
        channel = _pick(data, "channel", "target_channel", "targetChannel")
        return cls(
            title=_pick(data, "title"),
            body=_pick(data, "description", "body"),
            color=_pick(data, "color"),
            fields=fields,
            target_channel=str(channel) if channel else None,
            footer=_pick(data, "footer"),
            thumbnail=_pick(data, "thumbnail"),
            image=_pick(data, "image"),
        )


@dataclass(frozen=True, slots=True)
class MutateRoleAction:
    operation: RoleOperation
    role: str

    def to_dict(self) -> Dict[str, Any]:
        kind = "addRole" if self.operation is RoleOperation.ADD else "removeRole"
        return {"type": kind, "role": self.role}


@dataclass(frozen=True, slots=True)
class SetVariableAction:
    name: str
    value: Any
    scope: VariableScope = VariableScope.PER_USER

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "setVariable", "variable": self.name, "value": self.value, "scope": self.scope.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SetVariableAction":
        name = _pick(data, "variable", "name")
        if not name:
            raise ConfigurationError("setVariable action has no variable name")
        scope = _pick(data, "scope", default="user")
        if scope in ("perUser", "per_user"):
            scope = "user"
        elif scope in ("perGuild", "per_guild", "guild"):
            scope = "server"
        return cls(name=str(name), value=data.get("value"), scope=_enum(VariableScope, scope, "variable scope"))


@dataclass(frozen=True, slots=True)
class ModerateAction:
    operation: ModerateOperation
    duration_minutes: int | None = None
    reason: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.operation.value, "duration": self.duration_minutes, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModerateAction":
        duration = _pick(data, "duration", "duration_minutes", "durationMinutes")
        return cls(
            operation=_enum(ModerateOperation, data.get("type"), "moderation operation"),
            duration_minutes=int(duration) if duration is not None else None,
            reason=_pick(data, "reason"),
        )


@dataclass(frozen=True, slots=True)
class DeleteMessageAction:
    """Delete the message that triggered the rule."""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "deleteMessage"}


@dataclass(frozen=True, slots=True)
class SendDirectMessageAction:
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "dm", "content": self.content}


ActionSpec = Union[
    SendMessageAction,
    SendEmbedAction,
    MutateRoleAction,
    SetVariableAction,
    ModerateAction,
    DeleteMessageAction,
    SendDirectMessageAction,
]


def action_from_dict(data: Mapping[str, Any]) -> ActionSpec:
    """Build the action variant named by ``data["type"]``."""
    match data.get("type"):
        case "message":
            return SendMessageAction.from_dict(data)
        case "embed":
            return SendEmbedAction.from_dict(data)
        case "addRole" | "removeRole" as kind:
            role = _pick(data, "role", "role_id", "roleId")
            if not role:
                raise ConfigurationError(f"{kind} action has no role")
            operation = RoleOperation.ADD if kind == "addRole" else RoleOperation.REMOVE
            return MutateRoleAction(operation=operation, role=str(role))
        case "setVariable":
            return SetVariableAction.from_dict(data)
        case "kick" | "ban" | "timeout":
            return ModerateAction.from_dict(data)
        case "deleteMessage":
            return DeleteMessageAction()
        case "dm":
            return SendDirectMessageAction(content=str(_pick(data, "content", default="")))
        case other:
            raise ConfigurationError(f"Unknown action type {other!r}")


# ==========================================
# Rule
# ==========================================

@dataclass(frozen=True, slots=True)
class Rule:
    """
    An administrator-authored trigger, conditions and ordered actions.

    Attributes:
        id: Opaque identifier, stable across edits.
        owner_scope_id: Guild the rule belongs to.
        trigger: What makes the rule a candidate for an event.
        conditions: Who the rule applies to.
        actions: Side effects, executed in order.
        enabled: Disabled rules never match.
        cooldown_seconds: Per-actor cooldown; 0 disables it.
        max_uses: Fire count after which the rule stops matching; 0 is unlimited.
    """

    id: str
    owner_scope_id: str
    trigger: TriggerSpec
    conditions: ConditionSet = field(default_factory=ConditionSet)
    actions: Tuple[ActionSpec, ...] = ()
    enabled: bool = True
    cooldown_seconds: int = 0
    max_uses: int = 0
    name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if self.cooldown_seconds < 0:
            raise ConfigurationError("cooldown_seconds must not be negative")
        if self.max_uses < 0:
            raise ConfigurationError("max_uses must not be negative")

    def with_scope(self, owner_scope_id: str) -> "Rule":
        return replace(self, owner_scope_id=str(owner_scope_id))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "guildId": self.owner_scope_id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "trigger": self.trigger.to_dict(),
            "permissions": self.conditions.to_dict(),
            "actions": [action.to_dict() for action in self.actions],
            "cooldown": self.cooldown_seconds,
            "maxUses": self.max_uses,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        rule_id = _pick(data, "id")
        if not rule_id:
            raise ConfigurationError("Rule has no id")
        trigger = data.get("trigger")
        if not isinstance(trigger, Mapping):
            raise ConfigurationError(f"Rule {rule_id} has no trigger")

        raw_actions = list(data.get("actions") or ())
        # Legacy single-response layout: {"response": {"type": "message", ...}}
        response = data.get("response")
        if isinstance(response, Mapping):
            if response.get("type") == "action":
                raw_actions.extend(response.get("actions") or ())
            else:
                raw_actions.append(response)

        return cls(
            id=str(rule_id),
            owner_scope_id=str(_pick(data, "guildId", "owner_scope_id", "ownerScopeId", default="")),
            trigger=trigger_from_dict(trigger),
            conditions=ConditionSet.from_dict(_pick(data, "permissions", "conditions")),
            actions=tuple(action_from_dict(a) for a in raw_actions),
            enabled=bool(_pick(data, "enabled", default=True)),
            cooldown_seconds=int(_pick(data, "cooldown", "cooldown_seconds", "cooldownSeconds", default=0)),
            max_uses=int(_pick(data, "maxUses", "max_uses", default=0)),
            name=str(_pick(data, "name", default="")),
            description=str(_pick(data, "description", default="")),
        )
