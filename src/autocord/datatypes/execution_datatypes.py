"""
Per-firing execution context and the report an action pipeline produces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from autocord.datatypes.event_datatypes import InboundEvent, ReactionPayload


@dataclass(slots=True)
class ExecutionContext:
    """
    Everything a rule's templates and actions may read during one pipeline run.

    Built fresh for every firing and never persisted.

    Attributes:
        event: The inbound event that matched.
        user_variables: ``vars.user.*`` snapshot for the actor.
        server_variables: ``vars.server.*`` snapshot for the guild.
        timestamp: Time the context was built.
    """

    event: InboundEvent
    user_variables: Dict[str, Any] = field(default_factory=dict)
    server_variables: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def now_ms(self) -> int:
        return int(self.timestamp.timestamp() * 1000)

    def template_tree(self) -> Dict[str, Any]:
        """Return the nested mapping placeholders are resolved against."""
        event = self.event
        actor = event.actor
        guild = event.guild

        tree: Dict[str, Any] = {
            "user": {
                "mention": actor.mention,
                "name": actor.display_name or actor.name,
                "username": actor.name,
                "id": actor.id,
                "avatar": actor.avatar_url,
            },
            "server": {
                "name": guild.name,
                "memberCount": guild.member_count,
                "id": guild.id,
                "icon": guild.icon_url,
            },
            "vars": {
                "user": dict(self.user_variables),
                "server": dict(self.server_variables),
            },
            "timestamp": {
                "unix": int(self.timestamp.timestamp()),
                "iso": self.timestamp.isoformat(),
                "formatted": self.timestamp.astimezone().strftime("%c"),
            },
            "event": event.payload_tree(),
        }
        if event.channel is not None:
            tree["channel"] = {
                "name": event.channel.name,
                "id": event.channel.id,
                "mention": event.channel.mention,
            }
        if isinstance(event.payload, ReactionPayload):
            tree["reaction"] = {"emoji": event.payload.emoji.canonical}
        return tree


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    """Result of one action in a pipeline run."""

    index: int
    action_type: str
    ok: bool
    error_kind: str | None = None
    detail: str = ""


@dataclass(slots=True)
class ExecutionReport:
    """Outcome of one rule firing; ``outcomes`` is in action order."""

    rule_id: str
    outcomes: List[ActionOutcome] = field(default_factory=list)

    def record_success(self, index: int, action_type: str, detail: str = "") -> None:
        self.outcomes.append(ActionOutcome(index=index, action_type=action_type, ok=True, detail=detail))

    def record_failure(self, index: int, action_type: str, error_kind: str, detail: str) -> None:
        self.outcomes.append(
            ActionOutcome(index=index, action_type=action_type, ok=False, error_kind=error_kind, detail=detail)
        )

    @property
    def failed_indices(self) -> List[int]:
        return [o.index for o in self.outcomes if not o.ok]

    @property
    def succeeded(self) -> bool:
        return all(o.ok for o in self.outcomes)
