"""
Database package for Autocord.

- **db_connection.py**: Single long-lived aiosqlite connection with WAL pragmas
  and serialised write transactions.
- **db_schema.py**: Table and index creation.
- **key_locks.py**: On-demand per-key asyncio locks.
- **state_store.py**: The StateStore: keyed JSON records per family with an
  atomic ``with_lock`` read-modify-write, plus the append-only violation log.
"""
