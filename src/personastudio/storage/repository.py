"""Key-value persistence backends for serialized persona collections."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, Optional

from personastudio.errors import StorageError
from personastudio.storage.database import Database


class KeyValueStore(ABC):
    """
    Minimal persistence contract: opaque string values under string keys.

    Implementations raise StorageError when the backend cannot be read or
    written; a missing key is not an error.
    """

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the stored value, or None if nothing was saved."""
        ...

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...


class SQLiteKeyValueStore(KeyValueStore):
    """Key-value store backed by the `kv_store` table."""

    def __init__(self, db: Database):
        self.db = db

    def load(self, key: str) -> Optional[str]:
        try:
            conn = self.db.connect()
            cursor = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read '{key}': {e}") from e
        if row is None:
            return None
        return row["value"]

    def save(self, key: str, value: str) -> None:
        try:
            conn = self.db.connect()
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Could not write '{key}': {e}") from e


class MemoryKeyValueStore(KeyValueStore):
    """In-process store for tests and throwaway sessions."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def save(self, key: str, value: str) -> None:
        self.data[key] = value
