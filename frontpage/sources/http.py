"""Article and advertisement sources backed by the site's JSON API."""

from __future__ import annotations

import logging
from collections import defaultdict

import httpx

from frontpage.models import Advertisement, Article
from frontpage.retry import retry_async
from frontpage.sources import register_source
from frontpage.sources.base import BaseAdSource, BaseArticleSource, SourceError

logger = logging.getLogger(__name__)


async def _get_json(url: str, params: dict | None, timeout: float):
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()


def _documents(payload, key: str) -> list[dict]:
    """Accept either a bare list or ``{key: [...]}``."""
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        raise SourceError(f"Expected a list of {key}, got {type(payload).__name__}")
    return [doc for doc in payload if isinstance(doc, dict)]


@register_source("http_articles")
class HttpArticleSource(BaseArticleSource):
    """``GET {base_url}/news`` with ``limit``, ``category`` or ``tag`` params."""

    @property
    def name(self) -> str:
        return "http_articles"

    @property
    def _url(self) -> str:
        base_url = self.config.get("base_url", "")
        if not base_url:
            raise SourceError("sources.articles.base_url is not configured")
        return base_url.rstrip("/") + self.config.get("path", "/news")

    async def fetch_top_articles(self, n: int) -> list[Article]:
        return await self._query({"limit": n})

    async def fetch_by_category(self, category: str, n: int) -> list[Article]:
        return await self._query({"category": category, "limit": n})

    async def fetch_by_tag(self, tag: str, n: int) -> list[Article]:
        return await self._query({"tag": tag, "limit": n})

    async def _query(self, params: dict) -> list[Article]:
        payload = await retry_async(
            self._fetch_api, self._url, params, self.config.get("timeout", 15),
            max_retries=self.config.get("max_retries", 2),
        )
        articles = []
        for doc in _documents(payload, "news"):
            if "id" not in doc:
                logger.debug("Skipping article without id: %s", doc.get("title"))
                continue
            articles.append(Article.from_dict(doc))
        logger.info("Fetched %d articles (%s)", len(articles), params)
        return articles

    @staticmethod
    async def _fetch_api(url: str, params: dict, timeout: float):
        return await _get_json(url, params, timeout)


@register_source("http_ads")
class HttpAdSource(BaseAdSource):
    """``GET {base_url}/advertisements``, grouped by each ad's placement."""

    @property
    def name(self) -> str:
        return "http_ads"

    async def fetch_ad_slots(self) -> dict[str, list[Advertisement]]:
        base_url = self.config.get("base_url", "")
        if not base_url:
            raise SourceError("sources.ads.base_url is not configured")
        url = base_url.rstrip("/") + self.config.get("path", "/advertisements")

        payload = await retry_async(
            self._fetch_api, url, self.config.get("timeout", 15),
            max_retries=self.config.get("max_retries", 2),
        )

        slots: dict[str, list[Advertisement]] = defaultdict(list)
        for doc in _documents(payload, "advertisements"):
            if "id" not in doc:
                continue
            ad = Advertisement.from_dict(doc)
            if ad.placement:
                slots[ad.placement].append(ad)
        logger.info(
            "Fetched %d ads across %d placements",
            sum(len(v) for v in slots.values()), len(slots),
        )
        return dict(slots)

    @staticmethod
    async def _fetch_api(url: str, timeout: float):
        return await _get_json(url, None, timeout)
