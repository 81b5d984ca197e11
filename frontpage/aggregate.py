"""Snapshot assembly: the loaders the aggregation cache runs.

Articles, ad slots and auxiliary data are fetched in parallel. Only an
article failure fails the snapshot; ads fall back to empty placements and
auxiliary data to ``None``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from functools import partial
from typing import Callable

from frontpage.cache import AggregationCache, Loader
from frontpage.config import get_cache_config, get_snapshot_config
from frontpage.models import Article, AuxiliaryData, PrefetchTarget, Snapshot
from frontpage.sources.base import BaseAdSource, BaseArticleSource, BaseAuxiliarySource

logger = logging.getLogger(__name__)

HOME_KEY = "home"
AUXILIARY_KEY = "auxiliary:currency"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def order_articles(articles: list[Article], limit: int) -> list[Article]:
    """Featured rank ascending, then date descending, then source order.

    Duplicate ids keep their first occurrence.
    """
    seen: set[str] = set()
    unique = []
    for article in articles:
        if article.id in seen:
            continue
        seen.add(article.id)
        unique.append(article)

    # Both sorts are stable, so equal keys keep source order
    unique.sort(key=lambda a: a.date or _OLDEST, reverse=True)
    unique.sort(key=lambda a: a.featured_rank)
    return unique[:limit]


class SnapshotAssembler:
    """Builds Snapshots for the home page and for category/tag pages."""

    def __init__(
        self,
        cache: AggregationCache,
        articles: BaseArticleSource,
        ads: BaseAdSource | None = None,
        auxiliary: BaseAuxiliarySource | None = None,
        *,
        article_limit: int = 15,
        topic_article_limit: int = 20,
        ad_placements: list[str] | None = None,
        auxiliary_ttl: float = 900.0,
        topic_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.articles = articles
        self.ads = ads
        self.auxiliary = auxiliary
        self.article_limit = article_limit
        self.topic_article_limit = topic_article_limit
        self.ad_placements = list(ad_placements or [])
        self.auxiliary_ttl = auxiliary_ttl
        self.topic_ttl = topic_ttl
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: dict,
        cache: AggregationCache,
        articles: BaseArticleSource,
        ads: BaseAdSource | None = None,
        auxiliary: BaseAuxiliarySource | None = None,
        clock: Callable[[], float] = time.time,
    ) -> SnapshotAssembler:
        snap_cfg = get_snapshot_config(config)
        cache_cfg = get_cache_config(config)
        return cls(
            cache,
            articles,
            ads,
            auxiliary,
            article_limit=snap_cfg["article_limit"],
            topic_article_limit=snap_cfg["topic_article_limit"],
            ad_placements=snap_cfg["ad_placements"],
            auxiliary_ttl=cache_cfg["auxiliary_ttl_seconds"],
            topic_ttl=cache_cfg["prefetch_ttl_seconds"],
            clock=clock,
        )

    def loader_for(self, key: str) -> Loader:
        """Map a cache key to the coroutine function that builds its snapshot."""
        if key == HOME_KEY:
            return self.load_home
        kind, _, topic = key.partition(":")
        if kind in ("category", "tag") and topic:
            return partial(self.load_topic, kind, topic)
        raise ValueError(f"No loader for cache key '{key}'")

    def loader_for_target(self, target: PrefetchTarget) -> Loader:
        return self.loader_for(target.key)

    def ttl_for(self, key: str) -> float | None:
        """TTL for a key shape. ``None`` means the cache default (home)."""
        if key == HOME_KEY:
            return None
        return self.topic_ttl

    async def load_home(self) -> Snapshot:
        return await self._assemble(
            self.articles.fetch_top_articles(self.article_limit),
            self.article_limit,
            HOME_KEY,
        )

    async def load_topic(self, kind: str, topic: str) -> Snapshot:
        if kind == "category":
            fetch = self.articles.fetch_by_category(topic, self.topic_article_limit)
        elif kind == "tag":
            fetch = self.articles.fetch_by_tag(topic, self.topic_article_limit)
        else:
            raise ValueError(f"Unknown topic kind '{kind}'")
        return await self._assemble(fetch, self.topic_article_limit, f"{kind}:{topic}")

    async def _assemble(self, article_fetch, limit: int, label: str) -> Snapshot:
        articles, ad_slots, auxiliary = await asyncio.gather(
            article_fetch, self._load_ads(), self._load_auxiliary(),
        )
        snapshot = Snapshot(
            fetched_at=self._clock(),
            articles=tuple(order_articles(list(articles), limit)),
            ad_slots=ad_slots,
            auxiliary=auxiliary,
        )
        logger.info(
            "Assembled '%s': %d articles, %d ads, auxiliary=%s",
            label,
            len(snapshot.articles),
            sum(len(v) for v in snapshot.ad_slots.values()),
            "yes" if auxiliary else "no",
        )
        return snapshot

    def _empty_slots(self) -> dict[str, tuple]:
        return {placement: () for placement in self.ad_placements}

    async def _load_ads(self) -> dict[str, tuple]:
        slots = self._empty_slots()
        if self.ads is None:
            return slots
        try:
            fetched = await self.ads.fetch_ad_slots()
        except Exception as exc:
            logger.warning("Ad source failed, serving empty slots: %s", exc)
            return slots
        for placement, ads in fetched.items():
            slots[placement] = tuple(ads)
        return slots

    async def _load_auxiliary(self) -> AuxiliaryData | None:
        if self.auxiliary is None:
            return None
        try:
            result = await self.cache.get(
                AUXILIARY_KEY, self._fetch_auxiliary, ttl=self.auxiliary_ttl,
            )
        except Exception as exc:
            logger.warning("Auxiliary source failed, omitting it: %s", exc)
            return None
        return result.snapshot

    async def _fetch_auxiliary(self) -> AuxiliaryData:
        rates = await self.auxiliary.fetch_rates()
        return AuxiliaryData(fetched_at=self._clock(), rates=tuple(rates))
