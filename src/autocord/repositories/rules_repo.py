"""
Repository for rule definitions and their usage counters.

Rules are stored one record per rule, scoped by guild, so listing a guild's
rules returns them in the order they were first created even after edits.
"""

from __future__ import annotations

from typing import List

from autocord.database.state_store import KEEP, Family, StateStore, make_key
from autocord.datatypes.rule_datatypes import Rule
from autocord.engine.errors import ConfigurationError
from autocord.util.logger import get_logger

logger = get_logger("rules_repo")


class RulesRepo:
    """Typed access to the Rules and Usage families."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def list(self, guild_id: str) -> List[Rule]:
        """Return the guild's rules in insertion order, skipping unreadable records."""
        rules: List[Rule] = []
        for raw in await self._store.list(Family.RULES, str(guild_id)):
            try:
                rules.append(Rule.from_dict(raw))
            except (ConfigurationError, KeyError, TypeError, ValueError) as exc:
                logger.error("[RULES REPO] Skipping malformed rule %r in guild %s: %s", raw.get("id"), guild_id, exc)
        return rules

    async def get(self, guild_id: str, rule_id: str) -> Rule | None:
        raw = await self._store.get(Family.RULES, make_key(guild_id, rule_id))
        return Rule.from_dict(raw) if raw else None

    async def upsert(self, rule: Rule) -> None:
        await self._store.put(
            Family.RULES,
            make_key(rule.owner_scope_id, rule.id),
            rule.to_dict(),
            scope=rule.owner_scope_id,
        )

    async def delete(self, guild_id: str, rule_id: str) -> bool:
        deleted = await self._store.delete(Family.RULES, make_key(guild_id, rule_id))
        await self._store.delete(Family.USAGE, make_key(guild_id, rule_id))
        return deleted

    # ------------------------------------------------------------------
    # Usage counters
    # ------------------------------------------------------------------

    async def fire_count(self, guild_id: str, rule_id: str) -> int:
        return int(await self._store.get(Family.USAGE, make_key(guild_id, rule_id), 0))

    async def increment_fire_count(self, guild_id: str, rule_id: str) -> int:
        """Atomically add one to the rule's fire count and return the new count."""
        return await self._store.with_lock(
            Family.USAGE,
            make_key(guild_id, rule_id),
            lambda current: int(current or 0) + 1,
            scope=str(guild_id),
        )

    async def claim_use(self, guild_id: str, rule_id: str, max_uses: int) -> bool:
        """
        Take one of the rule's limited uses.

        The check and the increment happen under the same key lock, so at most
        ``max_uses`` callers ever get True, however many race for it.
        """
        claimed = False

        def take(current):
            nonlocal claimed
            count = int(current or 0)
            if count >= max_uses:
                return KEEP
            claimed = True
            return count + 1

        await self._store.with_lock(Family.USAGE, make_key(guild_id, rule_id), take, scope=str(guild_id))
        return claimed

    async def reset_fire_count(self, guild_id: str, rule_id: str) -> None:
        await self._store.put(Family.USAGE, make_key(guild_id, rule_id), 0, scope=str(guild_id))
