"""
Database schema initialization and version tracking.
"""

import aiosqlite
from autocord.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the state store tables, indexes and version row."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes if they do not exist.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        # Keyed records for every mutable family (rules, cooldowns, variables,
        # usage counters, content filters). rowid preserves insertion order
        # across upserts.
        await db.execute("""
            CREATE TABLE IF NOT EXISTS state_records (
                family TEXT NOT NULL,
                record_key TEXT NOT NULL,
                scope TEXT NOT NULL DEFAULT '',
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (family, record_key)
            )
        """)

        # Append-only audit trail written by content filters
        await db.execute("""
            CREATE TABLE IF NOT EXISTS violation_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                rule_id TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                channel_id TEXT,
                message_id TEXT,
                rule_kind TEXT NOT NULL,
                detail TEXT NOT NULL DEFAULT '{}',
                timestamp_ms INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_state_records_scope ON state_records(family, scope)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_violation_log_guild ON violation_log(guild_id, timestamp_ms DESC)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_violation_log_actor ON violation_log(actor_id, guild_id)")
