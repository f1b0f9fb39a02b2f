"""Key-value store with pluggable SQLite / in-memory backends.

Values are JSON-serialisable objects. The CLI persists to SQLite so
templates and the last-used watermark survive between runs; tests and
embedded use fall back to an in-memory dict.

Usage::

    from pdfbuddy.store.kv import build_store

    store = build_store()
    store.set("lastWatermark", {"type": "text", "text": "DRAFT"})
    value = store.get("lastWatermark")
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Abstract-ish key-value interface implemented by both backends."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default*."""
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        """Create or replace the value stored under *key*."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove *key*; a missing key is not an error."""
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        """Return True if *key* holds a value."""
        return self.get(key) is not None


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory store. Values are round-tripped through JSON like the SQLite backend."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        return default if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, default=str)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed store.

    Args:
        db_path: Path to the database file; parent directories are created.
    """

    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT DEFAULT (datetime('now'))
        )
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(str(self._db_path)) as conn:
            conn.execute(self._CREATE_TABLE)
            conn.commit()

    def get(self, key: str, default: Any = None) -> Any:
        with sqlite3.connect(str(self._db_path)) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable value for key %s", key)
            return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, default=str)
        with self._lock, sqlite3.connect(str(self._db_path)) as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, payload),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with self._lock, sqlite3.connect(str(self._db_path)) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_singleton: KeyValueStore | None = None


def build_store(*, force_new: bool = False) -> KeyValueStore:
    """Return a store matching the current settings.

    The instance is cached as a module singleton so all callers share the
    same store (important for the in-memory backend).

    Args:
        force_new: Bypass the singleton cache and create a fresh instance.
    """
    global _singleton  # noqa: PLW0603
    if _singleton is not None and not force_new:
        return _singleton

    from pdfbuddy.settings import get_settings

    storage = get_settings().storage
    if storage.backend == "sqlite":
        logger.info("Using SQLite store at %s", storage.sqlite_path)
        _singleton = SqliteKeyValueStore(storage.sqlite_path)
    else:
        if storage.backend != "memory":
            logger.warning("Unknown storage backend %r; using in-memory store", storage.backend)
        logger.info("Using in-memory store")
        _singleton = InMemoryKeyValueStore()
    return _singleton
