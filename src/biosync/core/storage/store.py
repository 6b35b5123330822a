"""Encrypted key-value store: the persistence contract of the engine.

Values are flat JSON-serialisable records; the store knows nothing about
their shape.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from biosync.core.storage.database import StoreDatabase
from biosync.core.storage.encryption import EncryptionError, RecordCipher

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a record cannot be read or written."""


class KeyValueStore:
    """``get``/``set`` over the ``kv_store`` table with values sealed at rest.

    Usage::

        db = StoreDatabase(":memory:")
        db.initialize()
        store = KeyValueStore(db, RecordCipher(key))
        store.set("daily_plan", plan.to_dict())
        store.get("daily_plan")
    """

    def __init__(self, database: StoreDatabase, cipher: RecordCipher) -> None:
        self._db = database
        self._cipher = cipher

    def get(self, key: str, default: Any = None) -> Any:
        try:
            row = self._db.connection.execute(
                "SELECT value_enc FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read {key!r}: {exc}") from exc
        if row is None:
            return default
        try:
            return self._cipher.open(row[0])
        except EncryptionError as exc:
            raise StorageError(f"Failed to decrypt {key!r}") from exc

    def set(self, key: str, value: Any) -> None:
        try:
            token = self._cipher.seal(value)
        except EncryptionError as exc:
            raise StorageError(f"Failed to encrypt {key!r}: {exc}") from exc
        conn = self._db.connection
        try:
            conn.execute(
                """INSERT INTO kv_store (key, value_enc, updated_at)
                   VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET
                       value_enc = excluded.value_enc,
                       updated_at = excluded.updated_at""",
                (key, token),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write {key!r}: {exc}") from exc
        logger.debug("Stored %s", key)

    def delete(self, key: str) -> bool:
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        rows = self._db.connection.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def rotate_all(self) -> int:
        """Re-seal every record under the newest key; returns the count."""
        conn = self._db.connection
        rows = conn.execute("SELECT key, value_enc FROM kv_store").fetchall()
        for key, token in rows:
            conn.execute(
                "UPDATE kv_store SET value_enc = ? WHERE key = ?",
                (self._cipher.rotate(token), key),
            )
        conn.commit()
        logger.info("Rotated %d stored records", len(rows))
        return len(rows)


class MemoryStore:
    """In-process store with the same contract, used when no key is configured."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return json.loads(self._data[key])

    def set(self, key: str, value: Any) -> None:
        # Same JSON boundary as the SQLite store: no shared references leak out.
        self._data[key] = json.dumps(value, sort_keys=True)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._data)
