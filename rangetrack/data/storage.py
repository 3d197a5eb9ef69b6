"""
RangeTrack — Local key/value storage.

Small JSON blobs (cached records, chat history, last weather report) kept
under namespaced keys in a SQLite table. Failures are logged and swallowed:
callers get None back and carry on.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_KEY_PREFIX = "rangetrack_"


class LocalStorage:
    """Namespaced JSON key/value store backed by SQLite."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from rangetrack.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        # ":memory:" only survives on the connection that created it
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(db_path, check_same_thread=False)
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self._db_path)

    def _init_db(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key   TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
        except sqlite3.Error as exc:
            logger.error("Error initializing local storage at %s: %s", self._db_path, exc)

    @staticmethod
    def _full_key(key: str) -> str:
        return f"{_KEY_PREFIX}{key}"

    def save_data(self, key: str, data: Any) -> None:
        """JSON-serialize `data` under `key`. Errors are logged, never raised."""
        try:
            payload = json.dumps(data)
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (self._full_key(key), payload),
                )
        except (TypeError, ValueError, sqlite3.Error) as exc:
            logger.error("Error saving %s to local storage: %s", key, exc)

    def load_data(self, key: str) -> Any:
        """Return the decoded value for `key`, or None if missing or unreadable."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (self._full_key(key),)
                ).fetchone()
            return json.loads(row[0]) if row else None
        except (ValueError, sqlite3.Error) as exc:
            logger.error("Error loading %s from local storage: %s", key, exc)
            return None

    def clear_data(self, key: str) -> None:
        """Remove `key`. Errors are logged, never raised."""
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (self._full_key(key),))
        except sqlite3.Error as exc:
            logger.error("Error clearing %s from local storage: %s", key, exc)
