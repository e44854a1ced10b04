"""
Durable key-indexed state store.

Every mutable record family the engine owns lives here: rules, cooldowns,
variables, usage counters and content filters as JSON values in
``state_records``, plus the append-only ``violation_log``.

The only read-modify-write primitive is :meth:`StateStore.with_lock`. It
holds a per-``(family, key)`` lock for the whole read, callback and commit,
so two events racing on the same cooldown or variable are strictly ordered
while unrelated keys proceed independently. Every mutation is committed
before the call returns.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List

import aiosqlite

from autocord.database.db_connection import ConnectionManager
from autocord.database.db_schema import SchemaManager
from autocord.database.key_locks import KeyedLocks
from autocord.datatypes.filter_datatypes import ViolationRecord
from autocord.engine.errors import StoreUnavailableError
from autocord.util.logger import get_logger

logger = get_logger("state_store")


class Family(Enum):
    RULES = "rules"
    COOLDOWNS = "cooldowns"
    VARIABLES = "variables"
    USAGE = "usage"
    FILTERS = "filters"


class _Keep:
    def __repr__(self) -> str:
        return "KEEP"


# Returned by a with_lock callback to leave the record untouched
KEEP: Any = _Keep()


def make_key(*parts: Any) -> str:
    """Encode a composite key unambiguously, whatever characters the parts contain."""
    return json.dumps([str(p) for p in parts], separators=(",", ":"))


class StateStore:
    """
    Async state store over a single SQLite connection.

    Lifecycle:
        1. ``await store.open(path)`` (creates schema)
        2. get/put/delete/list/with_lock, append_violation/list_violations
        3. ``await store.close()``
    """

    def __init__(self, connection: ConnectionManager | None = None) -> None:
        self._db = connection or ConnectionManager()
        self._locks = KeyedLocks()

    async def open(self, path: Path) -> None:
        await self._db.open(path)
        try:
            await SchemaManager.initialize_schema(self._db.connection)
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"Schema initialization failed: {exc}") from exc
        logger.info("[STATE STORE] Ready at %s", path)

    async def close(self) -> None:
        await self._db.close()

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    # ------------------------------------------------------------------
    # Keyed records
    # ------------------------------------------------------------------

    async def get(self, family: Family, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key`` or ``default``."""
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT value FROM state_records WHERE family = ? AND record_key = ?",
                (family.value, key),
            )
            row = await cursor.fetchone()
        return json.loads(row[0]) if row else default

    async def put(self, family: Family, key: str, value: Any, scope: str = "") -> None:
        """Insert or replace a record. Takes the key lock so it never splits a with_lock."""
        async with self._locks.hold((family, key)):
            async with self._db.transaction() as conn:
                await self._write(conn, family, key, value, scope)

    async def delete(self, family: Family, key: str) -> bool:
        """Delete a record; returns True if one existed."""
        async with self._locks.hold((family, key)):
            async with self._db.transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM state_records WHERE family = ? AND record_key = ?",
                    (family.value, key),
                )
                return cursor.rowcount > 0

    async def list(self, family: Family, scope: str) -> List[Any]:
        """Return every value in ``scope`` in insertion order."""
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT value FROM state_records WHERE family = ? AND scope = ? ORDER BY rowid",
                (family.value, scope),
            )
            rows = await cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    async def with_lock(
        self,
        family: Family,
        key: str,
        fn: Callable[[Any], Any],
        scope: str = "",
    ) -> Any:
        """
        Atomic read-modify-write on one record.

        ``fn`` receives the current value (None when absent) and returns the
        value to persist, or :data:`KEEP` to write nothing. Returns the value
        stored after the call.

        Raises:
            StoreUnavailableError: If the store cannot read or write. The
                key lock is released either way.
        """
        async with self._locks.hold((family, key)):
            current = await self.get(family, key)
            new_value = fn(current)
            if new_value is KEEP:
                return current
            async with self._db.transaction() as conn:
                await self._write(conn, family, key, new_value, scope)
            return new_value

    @staticmethod
    async def _write(conn: aiosqlite.Connection, family: Family, key: str, value: Any, scope: str) -> None:
        await conn.execute(
            """
            INSERT INTO state_records (family, record_key, scope, value)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(family, record_key) DO UPDATE SET
                value = excluded.value,
                scope = excluded.scope,
                updated_at = CURRENT_TIMESTAMP
            """,
            (family.value, key, scope, json.dumps(value)),
        )

    # ------------------------------------------------------------------
    # Violation log
    # ------------------------------------------------------------------

    async def append_violation(self, record: ViolationRecord) -> int:
        """Append an audit entry and return its row id."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO violation_log
                    (guild_id, rule_id, actor_id, channel_id, message_id, rule_kind, detail, timestamp_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.guild_id,
                    record.rule_id,
                    record.actor_id,
                    record.channel_id,
                    record.message_id,
                    record.rule_kind,
                    json.dumps(record.detail),
                    record.timestamp_ms,
                ),
            )
            row_id = cursor.lastrowid
        logger.debug(
            "[STATE STORE] Logged violation %s by %s in guild %s",
            record.rule_kind, record.actor_id, record.guild_id,
        )
        return int(row_id or 0)

    async def list_violations(self, guild_id: str, limit: int = 50, actor_id: str | None = None) -> List[ViolationRecord]:
        """Most recent violations for a guild, newest first."""
        query = (
            "SELECT guild_id, rule_id, actor_id, channel_id, message_id, rule_kind, detail, timestamp_ms "
            "FROM violation_log WHERE guild_id = ?"
        )
        params: list[Any] = [guild_id]
        if actor_id is not None:
            query += " AND actor_id = ?"
            params.append(actor_id)
        query += " ORDER BY timestamp_ms DESC, id DESC LIMIT ?"
        params.append(limit)

        async with self._db.read() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return [
            ViolationRecord(
                guild_id=row[0],
                rule_id=row[1],
                actor_id=row[2],
                channel_id=row[3],
                message_id=row[4],
                rule_kind=row[5],
                detail=json.loads(row[6]) if row[6] else {},
                timestamp_ms=row[7],
            )
            for row in rows
        ]
