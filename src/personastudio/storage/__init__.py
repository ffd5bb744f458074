"""Storage layer for Persona Studio."""

from personastudio.storage.database import Database
from personastudio.storage.repository import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from personastudio.storage.store import PersonaStore

__all__ = [
    "Database",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "MemoryKeyValueStore",
    "PersonaStore",
]
