"""
kehila.engine.cache — In-Memory TTL Cache
==========================================

Fast repeated reads for query results that are expensive or rate-limited
upstream (rules, leaderboards, profile lists), with bounded staleness.

* Entries expire lazily: a read that finds an entry older than its TTL
  deletes it and reports a miss.
* :class:`CacheSweeper` removes expired entries on a fixed interval so
  memory stays bounded between reads in long-lived processes.
* There is no capacity bound, write-through or refresh-ahead.  Once an
  entry expires the next caller pays the full fetch cost and repopulates.

The cache is an explicit component: the owning process builds one
:class:`TTLCache` and passes it to the services that use it.  Tests build
their own isolated instances.

Usage::

    cache = TTLCache()
    rules = cache.get(RULES_CACHE_KEY)
    if rules is None:
        rules = load_rules()
        cache.set(RULES_CACHE_KEY, rules, CacheTTL.LONG)

    cache.clear("profiles")      # drop every key containing "profiles"
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from kehila.constants import DEFAULT_SWEEP_INTERVAL, CacheTTL

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    """One cached value plus its access statistics."""

    data: Any
    timestamp: float
    ttl: float
    access_count: int = 0
    last_accessed: float = 0.0

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float, ttl: float | None = None) -> bool:
        return now - self.timestamp > (self.ttl if ttl is None else ttl)


@dataclass(frozen=True, slots=True)
class EntryStats:
    key: str
    age: float
    access_count: int
    last_accessed: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Counters plus a snapshot of live entries.  Diagnostics only."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    clears: int = 0
    size: int = 0
    entries: list[EntryStats] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "clears": self.clears,
            "size": self.size,
            "entries": [
                {
                    "key": e.key,
                    "age": round(e.age, 3),
                    "access_count": e.access_count,
                    "last_accessed": e.last_accessed,
                }
                for e in self.entries
            ],
        }


class TTLCache:
    """Thread-safe key/value store with per-entry expiry.

    Service functions run on worker threads (``run_db``), so every map
    operation happens under a lock.  No operation raises.

    Parameters
    ----------
    clock : zero-arg callable returning seconds; defaults to ``time.time``.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._clears = 0

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, key: str, custom_ttl: float | None = None) -> Any | None:
        """Return the cached value for *key*, or None if absent or stale.

        *custom_ttl* overrides the entry's own TTL for this read only.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(now, custom_ttl):
                del self._entries[key]
                self._misses += 1
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            return entry.data

    def __contains__(self, key: str) -> bool:
        """Presence check that does not touch statistics or expire entries."""
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def set(self, key: str, data: Any, ttl: float = CacheTTL.MEDIUM) -> None:
        """Store *data* under *key*, replacing any existing entry."""
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(
                data=data,
                timestamp=now,
                ttl=float(ttl),
                access_count=0,
                last_accessed=now,
            )
            self._sets += 1

    def invalidate(self, key: str) -> None:
        """Delete one entry if present."""
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self._deletes += 1

    def clear(self, pattern: str | None = None) -> int:
        """Delete every key containing *pattern*, or everything.

        *pattern* is a plain substring, not a glob or regex.  Returns the
        number of entries removed.
        """
        with self._lock:
            if pattern:
                doomed = [k for k in self._entries if pattern in k]
                for k in doomed:
                    del self._entries[k]
                self._deletes += len(doomed)
                return len(doomed)

            removed = len(self._entries)
            self._entries.clear()
            self._clears += 1
            return removed

    def sweep_expired(self) -> int:
        """Delete every entry older than its own TTL.  Returns the count."""
        now = self._clock()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in doomed:
                del self._entries[k]
            self._deletes += len(doomed)
        if doomed:
            logger.debug("Cache sweep removed %d expired entries", len(doomed))
        return len(doomed)

    # -------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------
    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                deletes=self._deletes,
                clears=self._clears,
                size=len(self._entries),
                entries=[
                    EntryStats(
                        key=k,
                        age=e.age(now),
                        access_count=e.access_count,
                        last_accessed=e.last_accessed,
                    )
                    for k, e in self._entries.items()
                ],
            )


class CacheSweeper:
    """Background task that calls :meth:`TTLCache.sweep_expired` on an interval."""

    def __init__(self, cache: TTLCache, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        self.cache = cache
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        try:
            return self.cache.sweep_expired()
        except Exception:
            logger.exception("Cache sweep failed")
            return 0

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the periodic sweep on *loop*.  No-op if already started."""
        if self._task is not None:
            return

        async def _sweep_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                self.sweep_once()

        self._task = loop.create_task(_sweep_loop(), name="cache-sweep")
        logger.info("Cache sweeper started (every %ss)", self.interval)

    def stop(self) -> None:
        """Cancel the sweep task."""
        if self._task:
            self._task.cancel()
            self._task = None
            logger.info("Cache sweeper stopped")
