"""SQLite database for the BioSync key-value store.

Handles connection lifecycle, schema creation, and version tracking.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEMA_V1 = """
-- One row per logical record (profile, food log, daily plan, ...)
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value_enc  TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class DatabaseError(Exception):
    """Raised when the store database cannot be opened or migrated."""


class StoreDatabase:
    """Owns the SQLite connection behind the key-value store.

    Usage::

        db = StoreDatabase("~/.biosync/engine.db")
        db.initialize()
        db.connection.execute("SELECT key FROM kv_store")
        db.close()
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseError("Database not initialized; call initialize() first")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and create the schema if needed."""
        if self._conn is not None:
            return
        if self._path == ":memory:":
            target = ":memory:"
        else:
            resolved = Path(self._path).expanduser()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            target = str(resolved)

        try:
            self._conn = sqlite3.connect(target)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA_V1)
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to open store at {target}: {exc}") from exc

        if self.get_schema_version() == 0:
            self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            self._conn.commit()
            logger.info("Created key-value store schema v%d at %s", SCHEMA_VERSION, target)

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> StoreDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
