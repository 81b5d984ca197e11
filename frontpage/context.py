"""Explicit lifecycle for the cache, interest model and prefetcher.

The rendering layer builds one ContentContext, keeps it for the session and
reads through SnapshotView objects::

    async with ContentContext.from_config(config) as ctx:
        view = ctx.view()
        await view.load()
        view.record_event(BehaviorEvent.visit_category("Deporte"))
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from frontpage.aggregate import HOME_KEY, SnapshotAssembler
from frontpage.behavior import BehaviorRecorder, ScrollSampler
from frontpage.cache import AggregationCache
from frontpage.config import get_behavior_config, get_cache_config, get_prefetch_config
from frontpage.interest import InterestModel
from frontpage.models import BehaviorEvent, CacheResult, Snapshot
from frontpage.prefetch import PrefetchScheduler
from frontpage.sources import create_source
from frontpage.sources.base import BaseAdSource, BaseArticleSource, BaseAuxiliarySource

logger = logging.getLogger(__name__)


class SnapshotView:
    """Read contract for one cache key: data, loading, error, refresh.

    ``data`` always reflects the newest installed snapshot, so background
    revalidations show up without a loading state. ``loading`` is only true
    until the first snapshot (or first unrecoverable error) for the key.
    """

    def __init__(self, context: ContentContext, key: str = HOME_KEY):
        self._context = context
        self.key = key
        self._data: Snapshot | None = None
        self._stale = False
        self._error: Exception | None = None

    @property
    def data(self) -> Snapshot | None:
        current = self._context.cache.peek(self.key)
        if current is not None:
            return current.snapshot
        return self._data

    @property
    def stale(self) -> bool:
        current = self._context.cache.peek(self.key)
        if current is not None:
            return current.stale
        return self._stale

    @property
    def error(self) -> Exception | None:
        if self.data is not None:
            return None
        return self._error

    @property
    def loading(self) -> bool:
        return self.data is None and self.error is None

    async def load(self) -> Snapshot | None:
        """Read through the cache. Serves stale data while revalidating."""
        loader = self._context.assembler.loader_for(self.key)
        ttl = self._context.assembler.ttl_for(self.key)
        try:
            result = await self._context.cache.get(self.key, loader, ttl=ttl)
        except Exception as exc:
            self._fail(exc)
            return self.data
        self._apply(result)
        return result.snapshot

    async def force_refresh(self) -> Snapshot | None:
        """Fetch now, ignoring the TTL. Keeps serving old data on failure."""
        loader = self._context.assembler.loader_for(self.key)
        ttl = self._context.assembler.ttl_for(self.key)
        try:
            result = await self._context.cache.force_refresh(self.key, loader, ttl=ttl)
        except Exception as exc:
            self._fail(exc)
            return self.data
        self._apply(result)
        return result.snapshot

    def record_event(self, event: BehaviorEvent) -> None:
        self._context.record(event)

    def _apply(self, result: CacheResult) -> None:
        self._data = result.snapshot
        self._stale = result.stale
        self._error = None

    def _fail(self, exc: Exception) -> None:
        if self.data is None:
            self._error = exc
            logger.error("Loading '%s' failed: %s", self.key, exc)
        else:
            logger.warning("Refreshing '%s' failed, keeping stale data: %s", self.key, exc)


class ContentContext:
    """Owns the cache table and interest table for one client session."""

    def __init__(
        self,
        config: dict,
        articles: BaseArticleSource,
        ads: BaseAdSource | None = None,
        auxiliary: BaseAuxiliarySource | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        cache_cfg = get_cache_config(config)
        self.cache = AggregationCache(
            ttl=cache_cfg["ttl_seconds"],
            max_entries=cache_cfg["max_entries"],
            clock=clock,
        )
        self.interest = InterestModel.from_config(config, clock=clock)
        self.recorder = BehaviorRecorder.from_config(config, self.interest, clock=clock)
        self.scroll = ScrollSampler(
            self.recorder,
            interval_seconds=get_behavior_config(config)["scroll_sample_seconds"],
            clock=clock,
        )
        self.assembler = SnapshotAssembler.from_config(
            config, self.cache, articles, ads, auxiliary, clock=clock,
        )
        self.scheduler = PrefetchScheduler.from_config(
            config, self.cache, self.interest, self.assembler.loader_for_target,
            clock=clock,
        )
        self.prefetch_enabled = get_prefetch_config(config)["enabled"]
        self._started = False

    @classmethod
    def from_config(
        cls, config: dict, clock: Callable[[], float] = time.time,
    ) -> ContentContext:
        """Build the context with the sources named in ``config['sources']``."""
        articles = create_source(config, "articles")
        if articles is None:
            raise ValueError("sources.articles must be configured")
        return cls(
            config,
            articles,
            ads=create_source(config, "ads"),
            auxiliary=create_source(config, "auxiliary"),
            clock=clock,
        )

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self.prefetch_enabled:
            self.recorder.subscribe(self.scheduler.trigger)
            self.scheduler.start()
        logger.info("Content context started (prefetch=%s)", self.prefetch_enabled)

    async def close(self) -> None:
        self.scroll.flush()
        if not self._started:
            await self.cache.close()
            return
        self._started = False
        self.recorder.unsubscribe(self.scheduler.trigger)
        await self.scheduler.stop()
        await self.cache.close()
        logger.info("Content context closed")

    async def __aenter__(self) -> ContentContext:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def view(self, key: str = HOME_KEY) -> SnapshotView:
        return SnapshotView(self, key)

    async def get(self, key: str = HOME_KEY) -> CacheResult:
        return await self.cache.get(
            key, self.assembler.loader_for(key), ttl=self.assembler.ttl_for(key),
        )

    def record(self, event: BehaviorEvent) -> None:
        self.recorder.record(event)

    def stats(self) -> dict:
        return {
            "cache": self.cache.get_stats(),
            "prefetch": dict(self.scheduler.stats),
            "topics": len(self.interest),
            "events_buffered": len(self.recorder.recent()),
            "events_dropped": self.recorder.dropped,
        }
