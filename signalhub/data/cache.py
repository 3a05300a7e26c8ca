"""Read-through cache with stale-while-revalidate.

``get_or_refresh(key, ttl, revalidate_window, compute_fn)`` ages the stored
entry against ``ttl``:

  - ``age < ttl - revalidate_window``: fresh, served as is
  - ``ttl - revalidate_window <= age < ttl``: stale, served immediately while a
    background task recomputes it; a failed refresh keeps the stale value
  - ``age >= ttl`` or nothing stored: ``compute_fn`` runs inline

Store errors never reach the caller: a failed read is a miss and a failed
write is logged and dropped. Errors raised by ``compute_fn`` on the inline
path do propagate.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from signalhub.data.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

ComputeFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    written_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.written_at

    def is_fresh(self, now: float, ttl: float, revalidate_window: float) -> bool:
        return self.age(now) < ttl - revalidate_window

    def is_expired(self, now: float, ttl: float) -> bool:
        return self.age(now) >= ttl

    def is_stale(self, now: float, ttl: float, revalidate_window: float) -> bool:
        return not self.is_fresh(now, ttl, revalidate_window) and not self.is_expired(now, ttl)

    def encode(self) -> str:
        return json.dumps({"v": self.value, "ts": self.written_at, "ttl": self.ttl})

    @classmethod
    def decode(cls, raw: str) -> "CacheEntry":
        """Parse a stored envelope; raises ``ValueError`` on anything malformed."""
        try:
            payload = json.loads(raw)
            return cls(value=payload["v"], written_at=float(payload["ts"]), ttl=float(payload["ttl"]))
        except (TypeError, KeyError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed cache entry: {e}") from e


class ReadThroughCache:
    """Stale-while-revalidate cache over a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._refreshing: dict[str, asyncio.Task] = {}

        # Stats tracking
        self._hits = 0
        self._stale_hits = 0
        self._misses = 0
        self._refreshes = 0
        self._refresh_failures = 0
        self._store_errors = 0

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def get_or_refresh(
        self,
        key: str,
        ttl: float,
        revalidate_window: float,
        compute_fn: ComputeFn,
    ) -> Any:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        if revalidate_window < 0:
            raise ValueError(f"revalidate_window must be >= 0, got {revalidate_window}")

        entry = self._read(key)
        now = self._clock()
        if entry is not None and not entry.is_expired(now, ttl):
            if entry.is_fresh(now, ttl, revalidate_window):
                self._hits += 1
                return entry.value
            self._stale_hits += 1
            self._schedule_refresh(key, ttl, compute_fn)
            return entry.value

        self._misses += 1
        value = await compute_fn()
        self._write(key, value, ttl)
        return value

    def _read(self, key: str) -> CacheEntry | None:
        try:
            raw = self._store.get(key)
        except Exception as e:
            self._store_errors += 1
            logger.warning("Cache read failed for %s, treating as miss: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.decode(raw)
        except ValueError as e:
            logger.warning("Cache entry for %s unreadable, treating as miss: %s", key, e)
            return None

    def _write(self, key: str, value: Any, ttl: float) -> bool:
        try:
            entry = CacheEntry(value=value, written_at=self._clock(), ttl=ttl)
            self._store.set(key, entry.encode(), ttl)
            return True
        except Exception as e:
            self._store_errors += 1
            logger.warning("Cache write failed for %s: %s", key, e)
            return False

    def _schedule_refresh(self, key: str, ttl: float, compute_fn: ComputeFn) -> None:
        running = self._refreshing.get(key)
        if running is not None and not running.done():
            return
        task = asyncio.create_task(self._refresh(key, ttl, compute_fn), name=f"cache-refresh:{key}")
        self._refreshing[key] = task
        task.add_done_callback(lambda t: self._on_refresh_done(key, t))

    async def _refresh(self, key: str, ttl: float, compute_fn: ComputeFn) -> None:
        try:
            value = await compute_fn()
        except Exception as e:
            self._refresh_failures += 1
            logger.warning("Background refresh failed for %s, keeping stale value: %s", key, e)
            return
        if self._write(key, value, ttl):
            self._refreshes += 1
            logger.debug("Background refresh stored %s", key)

    def _on_refresh_done(self, key: str, task: asyncio.Task) -> None:
        if self._refreshing.get(key) is task:
            del self._refreshing[key]
        if task.cancelled():
            logger.debug("Background refresh cancelled for %s", key)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background refresh crashed for %s: %r", key, exc)

    @property
    def pending_refreshes(self) -> int:
        return sum(1 for t in self._refreshing.values() if not t.done())

    async def drain(self) -> None:
        """Wait for every in-flight background refresh to finish."""
        while self._refreshing:
            await asyncio.gather(*list(self._refreshing.values()), return_exceptions=True)
            # done-callbacks run on the next loop iteration
            await asyncio.sleep(0)

    def get_stats(self) -> dict:
        reads = self._hits + self._stale_hits + self._misses
        return {
            "hits": self._hits,
            "stale_hits": self._stale_hits,
            "misses": self._misses,
            "background_refreshes": self._refreshes,
            "refresh_failures": self._refresh_failures,
            "store_errors": self._store_errors,
            "pending_refreshes": self.pending_refreshes,
            "hit_rate": round((self._hits + self._stale_hits) / reads, 4) if reads > 0 else 0.0,
        }
