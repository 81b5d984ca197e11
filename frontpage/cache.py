"""Aggregation cache: single-flight fetches with TTL and stale-while-revalidate.

Every key owns one CacheEntry. The first caller that needs data for a key
starts a fetch task and records it on the entry; any caller arriving while
that task runs awaits the same task, so concurrent requests resolve to the
same Snapshot instance. Expired snapshots are served immediately, flagged
stale, while a single background fetch refreshes them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from frontpage.models import CacheResult

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


@dataclass
class CacheEntry:
    key: str
    ttl: float
    snapshot: Any = None
    expires_at: float = 0.0
    in_flight: asyncio.Task | None = None
    in_flight_is_prefetch: bool = False
    last_error: Exception | None = None


class AggregationCache:
    """In-memory snapshot cache keyed by query shape (``home``, ``category:x``).

    Values must expose a ``fetched_at`` timestamp taken from the same clock
    the cache uses; ``expires_at`` is derived from it.
    """

    def __init__(
        self,
        ttl: float = 60.0,
        max_entries: int = 50,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._tasks: set[asyncio.Task] = set()
        self._stats = {
            "hits": 0,
            "stale_hits": 0,
            "misses": 0,
            "fetches": 0,
            "failures": 0,
            "prefetches": 0,
            "discarded": 0,
            "evictions": 0,
        }

    # --- reads -----------------------------------------------------------

    async def get(
        self,
        key: str,
        loader: Loader,
        *,
        ttl: float | None = None,
        fresh: bool = False,
    ) -> CacheResult:
        """Return the snapshot for ``key``, fetching at most once at a time.

        A live snapshot is returned without touching the loader. An expired
        one is returned flagged stale while a background fetch runs. With no
        snapshot at all (or ``fresh=True``) the caller waits for the shared
        fetch and receives its failure if it fails.
        """
        entry = self._entry(key, ttl)

        if not fresh and entry.snapshot is not None:
            if self._is_live(entry):
                self._stats["hits"] += 1
                return CacheResult(entry.snapshot)
            self._stats["stale_hits"] += 1
            self._ensure_fetch(entry, loader, prefetch=False)
            return CacheResult(entry.snapshot, stale=True)

        self._stats["misses"] += 1
        task = self._ensure_fetch(entry, loader, prefetch=False)
        snapshot = await asyncio.shield(task)
        return CacheResult(snapshot)

    async def force_refresh(
        self, key: str, loader: Loader, *, ttl: float | None = None,
    ) -> CacheResult:
        """Bypass the TTL: join the in-flight fetch for ``key`` or start one."""
        return await self.get(key, loader, ttl=ttl, fresh=True)

    async def prefetch(
        self, key: str, loader: Loader, *, ttl: float | None = None,
    ) -> bool:
        """Warm ``key`` speculatively. Returns True if a snapshot was installed.

        Skipped when the key is already live or any fetch for it is in
        flight. Failures are logged and never raised. ``ttl`` only applies
        to a key the cache has not seen yet.
        """
        entry = self._entry(key, ttl, override=False)
        if entry.in_flight is not None or self._is_live(entry):
            return False

        self._stats["prefetches"] += 1
        task = self._ensure_fetch(entry, loader, prefetch=True)
        try:
            await asyncio.shield(task)
        except Exception as exc:
            logger.info("Prefetch of '%s' discarded: %s", key, exc)
            return False
        return True

    def peek(self, key: str) -> CacheResult | None:
        """Return whatever is installed for ``key`` without fetching."""
        entry = self._entries.get(key)
        if entry is None or entry.snapshot is None:
            return None
        return CacheResult(entry.snapshot, stale=not self._is_live(entry))

    def is_warm(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._is_live(entry)

    def is_in_flight(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.in_flight is not None

    def last_error(self, key: str) -> Exception | None:
        entry = self._entries.get(key)
        return entry.last_error if entry else None

    def get_stats(self) -> dict:
        stats = dict(self._stats)
        stats["entries"] = len(self._entries)
        stats["in_flight"] = sum(
            1 for e in self._entries.values() if e.in_flight is not None
        )
        return stats

    # --- mutation --------------------------------------------------------

    def invalidate(self, prefix: str) -> int:
        """Drop snapshots whose key starts with ``prefix``. Returns the count."""
        dropped = 0
        for key in [k for k in self._entries if k.startswith(prefix)]:
            entry = self._entries[key]
            if entry.snapshot is not None:
                dropped += 1
            if entry.in_flight is None:
                del self._entries[key]
            else:
                entry.snapshot = None
                entry.expires_at = 0.0
        if dropped:
            logger.info("Invalidated %d cached snapshots for '%s'", dropped, prefix)
        return dropped

    async def close(self) -> None:
        """Cancel outstanding fetches and drop every entry."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._entries.clear()

    # --- internals -------------------------------------------------------

    def _is_live(self, entry: CacheEntry) -> bool:
        return entry.snapshot is not None and self._clock() < entry.expires_at

    def _entry(
        self, key: str, ttl: float | None, override: bool = True,
    ) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, ttl=self.default_ttl if ttl is None else ttl)
            self._entries[key] = entry
            self._evict(keep=key)
        elif ttl is not None and override:
            entry.ttl = ttl
        return entry

    def _ensure_fetch(
        self, entry: CacheEntry, loader: Loader, prefetch: bool,
    ) -> asyncio.Task:
        if entry.in_flight is not None:
            if not prefetch and entry.in_flight_is_prefetch:
                # a user now depends on it
                entry.in_flight_is_prefetch = False
            return entry.in_flight

        task = asyncio.create_task(self._fetch(entry, loader))
        entry.in_flight = task
        entry.in_flight_is_prefetch = prefetch
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        self._stats["fetches"] += 1
        logger.debug(
            "Fetching '%s' (%s)", entry.key, "prefetch" if prefetch else "user",
        )
        return task

    async def _fetch(self, entry: CacheEntry, loader: Loader) -> Any:
        try:
            snapshot = await loader()
        except Exception as exc:
            entry.last_error = exc
            self._stats["failures"] += 1
            if entry.in_flight_is_prefetch:
                logger.debug("Prefetch fetch for '%s' failed: %s", entry.key, exc)
            else:
                logger.warning("Fetch for '%s' failed: %s", entry.key, exc)
            raise
        else:
            return self._install(entry, snapshot)
        finally:
            entry.in_flight = None
            entry.in_flight_is_prefetch = False

    def _install(self, entry: CacheEntry, snapshot: Any) -> Any:
        """Install ``snapshot`` unless a newer one is already in place."""
        current = entry.snapshot
        if current is not None and snapshot.fetched_at < current.fetched_at:
            self._stats["discarded"] += 1
            logger.debug(
                "Discarded older snapshot for '%s' (%.3f < %.3f)",
                entry.key, snapshot.fetched_at, current.fetched_at,
            )
            return current

        entry.snapshot = snapshot
        entry.expires_at = snapshot.fetched_at + entry.ttl
        entry.last_error = None
        if entry.key in self._entries:
            self._entries.move_to_end(entry.key)
        return snapshot

    def _evict(self, keep: str) -> None:
        while len(self._entries) > self.max_entries:
            victim = next(
                (
                    k for k, e in self._entries.items()
                    if k != keep and e.in_flight is None
                ),
                None,
            )
            if victim is None:
                return
            del self._entries[victim]
            self._stats["evictions"] += 1
            logger.debug("Evicted '%s' from cache", victim)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # Background revalidations may have no awaiter left
        if not task.cancelled():
            task.exception()
