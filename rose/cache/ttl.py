"""Keyed TTL cache shared by every session.

Entries expire after their TTL, a failed refresh falls back to the stale
entry when one exists, and once the cache is full the entry with the lowest
``hit_count / seconds_since_last_access`` score is evicted first. Fetches run
through a :class:`FetchGate` so only a bounded number hit the store at once;
the rest queue in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger("rose.cache")

Fetcher = Callable[[], Awaitable[Any]]

# Floor for the elapsed time used in eviction scores, avoids dividing by zero
# for entries touched in the same clock tick.
_MIN_ELAPSED_SECONDS = 0.001


@dataclass(slots=True)
class CacheEntry:
    """Cached value with access bookkeeping."""

    value: Any
    stored_at: float
    expires_at: float
    last_access: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def score(self, now: float) -> float:
        return self.hit_count / max(now - self.last_access, _MIN_ELAPSED_SECONDS)


@dataclass(slots=True)
class CacheStats:
    entries: int
    max_size: int
    hits: int
    misses: int
    stale_fallbacks: int
    evictions: int
    active_fetches: int
    queued_fetches: int


class FetchGate:
    """Bounded concurrency for outbound fetches with FIFO queuing."""

    def __init__(self, max_concurrent: int) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.active = 0
        self.waiting = 0

    async def run(self, fetch: Fetcher, timeout: float | None = None) -> Any:
        """Run ``fetch`` once a slot frees up; ``timeout`` covers the fetch, not the wait."""

        self.waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self.waiting -= 1

        self.active += 1
        try:
            return await asyncio.wait_for(fetch(), timeout=timeout)
        finally:
            self.active -= 1
            self._semaphore.release()


class TTLCache:
    """Read-through cache keyed by normalised strings."""

    def __init__(
        self,
        *,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        fetch_timeout: float = 30.0,
        max_concurrent_fetches: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self._gate = FetchGate(max_concurrent_fetches)
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._hits = 0
        self._misses = 0
        self._stale_fallbacks = 0
        self._evictions = 0

    @staticmethod
    def normalize_key(key: str) -> str:
        return key.strip().lower()

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, key: str) -> CacheEntry | None:
        """Return the raw entry for ``key`` without touching its counters."""

        return self._entries.get(self.normalize_key(key))

    async def get_or_fetch(
        self,
        key: str,
        fetch: Fetcher,
        ttl: float | None = None,
        force_refresh: bool = False,
    ) -> Any:
        cache_key = self.normalize_key(key)
        now = self._clock()
        entry = self._entries.get(cache_key)

        if entry is not None and not force_refresh and not entry.is_expired(now):
            entry.hit_count += 1
            entry.last_access = now
            self._hits += 1
            return entry.value

        self._misses += 1
        # One fetch per key at a time; later callers share its outcome.
        pending = self._inflight.get(cache_key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(cache_key, fetch, ttl))
            self._inflight[cache_key] = pending
        return await asyncio.shield(pending)

    async def _load(self, cache_key: str, fetch: Fetcher, ttl: float | None) -> Any:
        try:
            value = await self._gate.run(fetch, timeout=self.fetch_timeout)
        except Exception as exc:
            stale = self._entries.get(cache_key)
            if stale is None:
                raise
            self._stale_fallbacks += 1
            logger.warning("Serving stale entry for %s after fetch failure: %r", cache_key, exc)
            return stale.value
        finally:
            self._inflight.pop(cache_key, None)

        self._store(cache_key, value, self.default_ttl if ttl is None else ttl)
        return value

    def _store(self, cache_key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        if cache_key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_one(now)
        self._entries[cache_key] = CacheEntry(
            value=value,
            stored_at=now,
            expires_at=now + ttl,
            last_access=now,
        )

    def _evict_one(self, now: float) -> None:
        victim = min(self._entries, key=lambda k: self._entries[k].score(now))
        del self._entries[victim]
        self._evictions += 1
        logger.debug("Evicted cache entry %s", victim)

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def invalidate(self, pattern: str | None = None) -> int:
        """Remove all entries, or those whose key contains ``pattern``."""

        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed

        needle = self.normalize_key(pattern)
        keys = [key for key in self._entries if needle in key]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def stats(self) -> CacheStats:
        return CacheStats(
            entries=len(self._entries),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
            stale_fallbacks=self._stale_fallbacks,
            evictions=self._evictions,
            active_fetches=self._gate.active,
            queued_fetches=self._gate.waiting,
        )
