"""Predictive prefetch: warm the snapshots the interest model ranks highest."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from frontpage.cache import AggregationCache, Loader
from frontpage.config import get_cache_config, get_prefetch_config
from frontpage.interest import InterestModel
from frontpage.models import BehaviorEvent, PrefetchTarget

logger = logging.getLogger(__name__)


class PrefetchScheduler:
    """Runs prefetch passes on an interval and whenever it is triggered.

    Only one pass runs at a time; triggers that arrive meanwhile are folded
    into a single follow-up pass. At most ``max_in_flight`` prefetches run
    at once across all keys, surplus targets wait for a later pass.
    """

    def __init__(
        self,
        cache: AggregationCache,
        interest: InterestModel,
        loader_for: Callable[[PrefetchTarget], Loader],
        *,
        top_k: int = 5,
        max_in_flight: int = 2,
        interval_seconds: float = 30.0,
        idle_cutoff_seconds: float = 120.0,
        related: dict[str, list[str]] | None = None,
        related_weight: float = 0.5,
        prefetch_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.interest = interest
        self.loader_for = loader_for
        self.top_k = top_k
        self.max_in_flight = max_in_flight
        self.interval_seconds = interval_seconds
        self.idle_cutoff_seconds = idle_cutoff_seconds
        self.related = related or {}
        self.related_weight = related_weight
        self.prefetch_ttl = prefetch_ttl
        self._clock = clock
        self._running = False
        self._dirty = False
        self._pass_task: asyncio.Task | None = None
        self._loop_task: asyncio.Task | None = None
        self._in_flight: dict[str, asyncio.Task] = {}
        self.stats = {"passes": 0, "started": 0, "deferred": 0, "skipped_idle": 0}

    @classmethod
    def from_config(
        cls,
        config: dict,
        cache: AggregationCache,
        interest: InterestModel,
        loader_for: Callable[[PrefetchTarget], Loader],
        clock: Callable[[], float] = time.time,
    ) -> PrefetchScheduler:
        cfg = get_prefetch_config(config)
        return cls(
            cache,
            interest,
            loader_for,
            top_k=cfg["top_k"],
            max_in_flight=cfg["max_in_flight"],
            interval_seconds=cfg["interval_seconds"],
            idle_cutoff_seconds=cfg["idle_cutoff_seconds"],
            related=cfg["related"],
            related_weight=cfg["related_weight"],
            prefetch_ttl=get_cache_config(config)["prefetch_ttl_seconds"],
            clock=clock,
        )

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # --- triggering ------------------------------------------------------

    def trigger(self, event: BehaviorEvent | None = None) -> None:
        """Request a pass. Usable directly as a BehaviorRecorder listener."""
        if self._running or (self._pass_task and not self._pass_task.done()):
            self._dirty = True
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # picked up by the next interval pass
            self._dirty = True
            return
        self._pass_task = loop.create_task(self._run_coalesced())

    async def _run_coalesced(self) -> None:
        while True:
            self._dirty = False
            await self.run_once()
            if not self._dirty:
                return

    def start(self) -> None:
        """Begin periodic passes. Requires a running event loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(self._loop())

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    async def stop(self) -> None:
        """Cancel the periodic loop, any pending pass and running prefetches."""
        tasks = [t for t in (self._loop_task, self._pass_task) if t]
        tasks.extend(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._pass_task = None
        self._in_flight.clear()

    async def drain(self) -> None:
        """Wait for the pending pass and all running prefetches to finish."""
        if self._pass_task is not None:
            await asyncio.gather(self._pass_task, return_exceptions=True)
        while self._in_flight:
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)

    # --- passes ----------------------------------------------------------

    def plan(self) -> list[PrefetchTarget]:
        """Top interest targets plus related categories, best first."""
        targets = self.interest.top_scores(self.top_k)
        present = {t.key for t in targets}
        expanded = list(targets)
        for target in targets:
            if target.kind != "category":
                continue
            for related in self.related.get(target.topic, []):
                candidate = PrefetchTarget(
                    kind="category",
                    topic=related,
                    score=target.score * self.related_weight,
                )
                if candidate.key not in present:
                    present.add(candidate.key)
                    expanded.append(candidate)
        expanded.sort(key=lambda t: t.score, reverse=True)
        return expanded[:self.top_k]

    async def run_once(self) -> list[str]:
        """Run one pass and return the keys whose prefetch it started."""
        if self._running:
            self._dirty = True
            return []

        self._running = True
        try:
            return self._pass()
        except Exception:
            logger.exception("Prefetch pass failed")
            return []
        finally:
            self._running = False

    def _pass(self) -> list[str]:
        self.stats["passes"] += 1
        if self._is_idle():
            self.stats["skipped_idle"] += 1
            logger.debug("User idle, skipping prefetch pass")
            return []

        started = []
        deferred = 0
        for target in self.plan():
            key = target.key
            if key in self._in_flight:
                continue
            if self.cache.is_warm(key) or self.cache.is_in_flight(key):
                continue
            if len(self._in_flight) >= self.max_in_flight:
                deferred += 1
                continue
            try:
                loader = self.loader_for(target)
            except Exception as exc:
                logger.warning("No loader for prefetch target '%s': %s", key, exc)
                continue
            self._start(key, loader)
            started.append(key)

        self.stats["started"] += len(started)
        self.stats["deferred"] += deferred
        if started or deferred:
            logger.info(
                "Prefetch pass: started %d (%s), deferred %d",
                len(started), ", ".join(started), deferred,
            )
        return started

    def _is_idle(self) -> bool:
        last = self.interest.last_activity
        if last is None:
            return True
        return self._clock() - last > self.idle_cutoff_seconds

    def _start(self, key: str, loader: Loader) -> None:
        task = asyncio.get_running_loop().create_task(self._prefetch(key, loader))
        self._in_flight[key] = task
        task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))

    async def _prefetch(self, key: str, loader: Loader) -> None:
        try:
            warmed = await self.cache.prefetch(key, loader, ttl=self.prefetch_ttl)
        except Exception as exc:
            logger.info("Prefetch of '%s' failed: %s", key, exc)
            return
        if warmed:
            logger.debug("Prefetched '%s'", key)
