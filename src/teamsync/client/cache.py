"""Local cache for synchronized buckets.

This module provides:
- LocalCache: SQLite-based durable key-value store holding the last
  value applied to each bucket, scoped by team

The cache has no authority of its own: it is overwritten by every
successful server read and every applied broadcast, and is only read
back when the server cannot be reached.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalCache:
    """SQLite-based key-value cache that survives restarts."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the cache database.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                scope TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (scope, key)
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def get(self, scope: str, key: str) -> Any | None:
        """Get a cached value.

        Args:
            scope: Cache scope (team ID).
            key: Entry key (field name).

        Returns:
            The decoded value, or None if absent or unreadable.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM cache_entries WHERE scope = ? AND key = ?",
                (scope, key),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable cache entry %s/%s", scope, key)
            return None

    def set(self, scope: str, key: str, value: Any) -> None:
        """Store a value, replacing any previous one.

        Args:
            scope: Cache scope (team ID).
            key: Entry key (field name).
            value: JSON-serializable value.
        """
        encoded = json.dumps(value)
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries (scope, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (scope, key, encoded, time.time()),
            )

    def remove(self, scope: str, key: str) -> None:
        """Remove one entry."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM cache_entries WHERE scope = ? AND key = ?",
                (scope, key),
            )

    def clear(self, scope: str | None = None) -> None:
        """Remove all entries, or all entries of one scope."""
        with self._lock:
            if scope is None:
                self._conn.execute("DELETE FROM cache_entries")
            else:
                self._conn.execute(
                    "DELETE FROM cache_entries WHERE scope = ?", (scope,)
                )

    def keys(self, scope: str) -> list[str]:
        """List the keys cached for a scope."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM cache_entries WHERE scope = ? ORDER BY key",
                (scope,),
            ).fetchall()
        return [row["key"] for row in rows]
