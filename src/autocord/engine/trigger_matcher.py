"""
Trigger matching: which of a guild's rules an inbound event is a candidate for.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, List, Mapping

from autocord.datatypes.event_datatypes import (
    EventKind,
    EventPayload,
    InboundEvent,
    MessagePayload,
    ReactionPayload,
)
from autocord.datatypes.rule_datatypes import (
    EventTrigger,
    MatchType,
    MessageTrigger,
    ReactionAction,
    ReactionTrigger,
    Rule,
    TriggerSpec,
)
from autocord.engine.errors import ConfigurationError
from autocord.util.logger import get_logger

logger = get_logger("trigger_matcher")


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a rule's regex case-insensitively; malformed patterns raise ConfigurationError."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise ConfigurationError(f"Invalid regex {pattern!r}: {exc}") from exc


@dataclass(slots=True)
class MatchResult:
    """Matching rules in stored order, plus rules skipped for bad configuration."""

    rules: List[Rule] = field(default_factory=list)
    errors: List[tuple[str, ConfigurationError]] = field(default_factory=list)


def match_message(trigger: MessageTrigger, content: str) -> bool:
    text = content.lower()
    needle = trigger.text.lower()

    match trigger.match_type:
        case MatchType.EXACT:
            return text == needle
        case MatchType.STARTS_WITH:
            return bool(needle) and text.startswith(needle)
        case MatchType.CONTAINS:
            return bool(needle) and needle in text
        case MatchType.REGEX:
            return compile_pattern(trigger.text).search(text) is not None
        case MatchType.KEYWORD_SET:
            keywords = trigger.keywords or tuple(k.strip() for k in trigger.text.split(","))
            return any(k and k.lower() in text for k in keywords)
    raise ConfigurationError(f"Unsupported match type {trigger.match_type!r}")


def match_reaction(trigger: ReactionTrigger, event: InboundEvent, payload: ReactionPayload) -> bool:
    change = ReactionAction.ADD if event.kind is EventKind.REACTION_ADD else ReactionAction.REMOVE
    if trigger.action is not ReactionAction.BOTH and trigger.action is not change:
        return False
    if trigger.channel_scope and trigger.channel_scope != event.channel_id:
        return False
    emoji = payload.emoji
    return trigger.emoji in {form for form in (emoji.name, emoji.id, emoji.canonical) if form}


def trigger_matches(trigger: TriggerSpec, event: InboundEvent) -> bool:
    """
    Return True when ``trigger`` accepts ``event``.

    Raises:
        ConfigurationError: If the trigger itself is unusable (bad regex).
    """
    match trigger, event.payload:
        case MessageTrigger(), MessagePayload(content=content) if event.kind is EventKind.MESSAGE:
            return match_message(trigger, content)
        case EventTrigger(event_name=name), EventPayload(event_name=event_name) if event.kind is EventKind.EVENT:
            return name == event_name
        case ReactionTrigger(), ReactionPayload() as payload if event.kind in (
            EventKind.REACTION_ADD,
            EventKind.REACTION_REMOVE,
        ):
            return match_reaction(trigger, event, payload)
    return False


class TriggerMatcher:
    """Selects candidate rules for an event without touching shared state."""

    def match(
        self,
        event: InboundEvent,
        rules: Iterable[Rule],
        fire_counts: Mapping[str, int] | None = None,
    ) -> MatchResult:
        """
        Return the rules whose trigger accepts ``event``, in the given order.

        Disabled rules and rules whose fire count reached ``max_uses`` are
        never returned. A rule with a broken trigger is skipped and reported
        in ``MatchResult.errors``; the remaining rules are still evaluated.
        """
        fire_counts = fire_counts or {}
        result = MatchResult()

        for rule in rules:
            if not rule.enabled:
                continue
            if rule.max_uses > 0 and fire_counts.get(rule.id, 0) >= rule.max_uses:
                continue
            try:
                if trigger_matches(rule.trigger, event):
                    result.rules.append(rule)
            except ConfigurationError as exc:
                logger.warning("[TRIGGER MATCHER] Skipping rule %s in guild %s: %s", rule.id, rule.owner_scope_id, exc)
                result.errors.append((rule.id, exc))

        return result
