"""
Database connection management, single long-lived connection model.

Design rationale
----------------
SQLite performs best with a **single long-lived connection** rather than
opening/closing a connection per operation:
  - Avoids repeated handshake and pragma setup overhead
  - Keeps the page cache warm across operations
  - WAL mode allows one writer + concurrent readers safely

Concurrency model
-----------------
SQLite is inherently single-writer. Writers are serialised at the
application layer with ``_write_sem`` so a commit never interleaves with
another coroutine's statements. The semaphore is only held for the
duration of one short transaction; logical per-key locking lives in
:mod:`autocord.database.key_locks`.

Usage
-----
    await db_connection.open(path)

    async with db_connection.read() as conn:
        cursor = await conn.execute("SELECT ...")

    async with db_connection.transaction() as conn:
        await conn.execute("INSERT ...")
        # commits on clean exit, rolls back on exception

    await db_connection.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from autocord.engine.errors import StoreUnavailableError
from autocord.util.logger import get_logger

logger = get_logger("database_connection")

# ── Pragmas applied once when the connection is opened ──────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = FULL",      # every commit reaches disk before returning
    "PRAGMA cache_size = -65536",     # 64 MB page cache
    "PRAGMA temp_store = MEMORY",
    "PRAGMA busy_timeout = 5000",
]


class ConnectionManager:
    """
    Wrapper around a single aiosqlite connection.

    * Reads  - ``async with read()``; WAL allows concurrent reads.
    * Writes - ``async with transaction()``; serialised by ``_write_sem``.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, path: Path) -> None:
        """
        Open the database file and apply pragmas.

        Args:
            path: Path to the SQLite database file.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists, ignoring")
            return

        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(path)
            self._conn.row_factory = aiosqlite.Row
            for pragma in _PRAGMAS:
                await self._conn.execute(pragma)
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"Cannot open database {path}: {exc}") from exc

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush the WAL and close the connection."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except Exception:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Connection access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            StoreUnavailableError: If the connection has not been opened.
        """
        if self._conn is None:
            raise StoreUnavailableError("Database connection is not open")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialised write transaction.

        Commits on clean exit, rolls back if an exception is raised. SQLite
        errors surface as StoreUnavailableError.
        """
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.Error as exc:
                await self._safe_rollback(conn)
                raise StoreUnavailableError(str(exc)) from exc
            except BaseException:
                await self._safe_rollback(conn)
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Read access; no semaphore is taken."""
        try:
            yield self.connection
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

    @staticmethod
    async def _safe_rollback(conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except Exception:
            logger.exception("[DB CONNECTION] Rollback failed")

