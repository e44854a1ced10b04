"""
Administrative entry points: rule and content filter CRUD, usage resets,
the violation log and template preview.

This is the only writer of rule and filter records. Callers may pass either
the dataclasses or the dashboard's JSON dicts.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Any, List, Mapping

from autocord.database.state_store import StateStore
from autocord.datatypes.execution_datatypes import ExecutionContext
from autocord.datatypes.filter_datatypes import GUILD_WIDE, ContentFilter, ViolationRecord
from autocord.datatypes.rule_datatypes import MatchType, MessageTrigger, Rule
from autocord.engine import action_executor
from autocord.engine.errors import ConfigurationError
from autocord.engine.trigger_matcher import compile_pattern
from autocord.repositories.filter_repo import FilterRepo
from autocord.repositories.rules_repo import RulesRepo
from autocord.util.logger import get_logger

logger = get_logger("rule_admin")


def _as_rule(scope_id: str, rule: Rule | Mapping[str, Any]) -> Rule:
    if isinstance(rule, Rule):
        return rule
    data = dict(rule)
    if not data.get("id"):
        data["id"] = uuid.uuid4().hex
    data["guildId"] = scope_id
    return Rule.from_dict(data)


class RuleAdmin:
    """CRUD over rules, filters and the violation log for one store."""

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self.rules = RulesRepo(store)
        self.filters = FilterRepo(store)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def list_rules(self, scope_id: str) -> List[Rule]:
        return await self.rules.list(str(scope_id))

    async def get_rule(self, scope_id: str, rule_id: str) -> Rule | None:
        return await self.rules.get(str(scope_id), str(rule_id))

    async def upsert_rule(self, scope_id: str, rule: Rule | Mapping[str, Any]) -> Rule:
        """
        Create or replace a rule in ``scope_id`` and return what was stored.

        A rule without an id gets a fresh one. The rule's owner scope is
        always forced to ``scope_id``.

        Raises:
            ConfigurationError: If the rule cannot be parsed or its regex
                does not compile.
        """
        scope_id = str(scope_id)
        parsed = _as_rule(scope_id, rule)
        if not parsed.id:
            parsed = replace(parsed, id=uuid.uuid4().hex)
        parsed = parsed.with_scope(scope_id)

        trigger = parsed.trigger
        if isinstance(trigger, MessageTrigger) and trigger.match_type is MatchType.REGEX:
            compile_pattern(trigger.text)

        await self.rules.upsert(parsed)
        logger.info("[RULE ADMIN] Saved rule %s in guild %s", parsed.id, scope_id)
        return parsed

    async def delete_rule(self, scope_id: str, rule_id: str) -> bool:
        deleted = await self.rules.delete(str(scope_id), str(rule_id))
        if deleted:
            logger.info("[RULE ADMIN] Deleted rule %s in guild %s", rule_id, scope_id)
        return deleted

    async def reset_usage(self, scope_id: str, rule_id: str) -> None:
        await self.rules.reset_fire_count(str(scope_id), str(rule_id))

    async def usage(self, scope_id: str, rule_id: str) -> int:
        return await self.rules.fire_count(str(scope_id), str(rule_id))

    # ------------------------------------------------------------------
    # Content filters
    # ------------------------------------------------------------------

    async def set_content_filter(self, content_filter: ContentFilter | Mapping[str, Any]) -> ContentFilter:
        if not isinstance(content_filter, ContentFilter):
            try:
                content_filter = ContentFilter.from_dict(content_filter)
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid content filter: {exc}") from exc
        await self.filters.put(content_filter)
        logger.info(
            "[RULE ADMIN] Saved content filter for guild %s channel %s (%d rules)",
            content_filter.guild_id, content_filter.channel_id, len(content_filter.rules),
        )
        return content_filter

    async def get_content_filter(self, guild_id: str, channel_id: str = GUILD_WIDE) -> ContentFilter | None:
        return await self.filters.get(str(guild_id), str(channel_id))

    async def delete_content_filter(self, guild_id: str, channel_id: str = GUILD_WIDE) -> bool:
        return await self.filters.delete(str(guild_id), str(channel_id))

    async def list_violations(self, guild_id: str, limit: int = 50, actor_id: str | None = None) -> List[ViolationRecord]:
        return await self.store.list_violations(str(guild_id), limit=limit, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    @staticmethod
    def preview(rule: Rule, context: ExecutionContext | Mapping[str, Any]) -> str | None:
        """Resolve the rule's first text action against ``context``; nothing is sent or stored."""
        return action_executor.preview(rule, context)
