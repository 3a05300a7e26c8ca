"""Key-value stores behind the read-through cache.

Both stores speak the same small contract: ``get(key) -> str | None``,
``set(key, data, ttl_seconds)`` and ``clear_expired()``. Any call may raise;
the cache layer decides what a failure means. ``MemoryStore`` serves a single process;
``SQLiteStore`` persists across restarts and is shared by processes on one host.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, data: str, ttl_seconds: float) -> None: ...

    def clear_expired(self) -> int: ...


class MemoryStore:
    """Dict-backed store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            data, expires_at = item
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return data

    def set(self, key: str, data: str, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (data, self._clock() + ttl_seconds)

    def clear_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._data.items() if now >= exp]
            for k in expired:
                del self._data[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)

    def close(self) -> None:
        with self._lock:
            self._data.clear()


class SQLiteStore:
    """SQLite store with TTL expiry. WAL mode keeps concurrent readers cheap."""

    def __init__(self, db_path: Path | str, clock: Callable[[], float] = time.time):
        self._db_path = str(db_path)
        self._clock = clock
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            timeout=5,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._lock = threading.Lock()
        self._create_table()

    def _create_table(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_entries (
                key        TEXT PRIMARY KEY,
                data       TEXT NOT NULL,
                created_at REAL NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_kv_expires
            ON kv_entries(expires_at)
        """)
        self._conn.commit()

    def get(self, key: str) -> str | None:
        now = self._clock()
        with self._lock:
            row = self._conn.execute(
                "SELECT data, expires_at FROM kv_entries WHERE key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            data, expires_at = row
            if now >= expires_at:
                self._conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
                self._conn.commit()
                return None
            return data

    def set(self, key: str, data: str, ttl_seconds: float) -> None:
        now = self._clock()
        with self._lock:
            self._conn.execute(
                """INSERT OR REPLACE INTO kv_entries (key, data, created_at, expires_at)
                   VALUES (?, ?, ?, ?)""",
                (key, data, now, now + ttl_seconds),
            )
            self._conn.commit()

    def clear_expired(self) -> int:
        """Bulk eviction of expired rows. Returns the number deleted."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM kv_entries WHERE expires_at <= ?", (self._clock(),)
            )
            self._conn.commit()
        return cursor.rowcount

    def __len__(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM kv_entries").fetchone()
        return row[0] if row else 0

    def close(self) -> None:
        self._conn.close()


def build_store(db_path: str = "") -> MemoryStore | SQLiteStore:
    """SQLite store when a path is configured, otherwise an in-process memory store."""
    if db_path:
        logger.info("Using SQLite cache store at %s", db_path)
        return SQLiteStore(db_path)
    return MemoryStore()
