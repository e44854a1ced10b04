"""
Repository for template variables.

A variable is keyed by ``(guild_id, scope, scope_key, name)`` where
``scope_key`` is the user id for per-user variables and empty for per-guild
ones. Records in one ``(guild_id, scope, scope_key)`` bucket share a store
scope so the whole bucket can be read in one query.
"""

from __future__ import annotations

from typing import Any, Dict

from autocord.database.state_store import Family, StateStore, make_key
from autocord.datatypes.rule_datatypes import VariableScope


class VariablesRepo:
    """Typed access to the Variables family."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    @staticmethod
    def _bucket(guild_id: str, scope: VariableScope, scope_key: str) -> str:
        return make_key(guild_id, scope.value, scope_key)

    async def bucket(self, guild_id: str, scope: VariableScope, scope_key: str = "") -> Dict[str, Any]:
        """Return ``{name: value}`` for one bucket."""
        if scope is VariableScope.PER_GUILD:
            scope_key = ""
        records = await self._store.list(Family.VARIABLES, self._bucket(guild_id, scope, scope_key))
        return {record["name"]: record["value"] for record in records}

    async def user_variables(self, guild_id: str, user_id: str) -> Dict[str, Any]:
        return await self.bucket(guild_id, VariableScope.PER_USER, user_id)

    async def server_variables(self, guild_id: str) -> Dict[str, Any]:
        return await self.bucket(guild_id, VariableScope.PER_GUILD)

    async def set(self, guild_id: str, scope: VariableScope, scope_key: str, name: str, value: Any) -> Any:
        """Write one variable under its key lock and return the stored value."""
        if scope is VariableScope.PER_GUILD:
            scope_key = ""
        record = await self._store.with_lock(
            Family.VARIABLES,
            make_key(guild_id, scope.value, scope_key, name),
            lambda _current: {"name": name, "value": value},
            scope=self._bucket(guild_id, scope, scope_key),
        )
        return record["value"]
