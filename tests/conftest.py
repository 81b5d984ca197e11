"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from frontpage.config import load_config
from frontpage.models import Advertisement, Article, CurrencyRate, Snapshot
from frontpage.sources.base import BaseAdSource, BaseArticleSource, BaseAuxiliarySource


class FakeClock:
    """Manually advanced clock, callable like time.time."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingLoader:
    """Snapshot loader that counts calls and can block or fail on demand."""

    def __init__(self, clock, gate: asyncio.Event | None = None, fail: Exception | None = None):
        self.clock = clock
        self.gate = gate
        self.fail = fail
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def __call__(self) -> Snapshot:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail is not None:
                raise self.fail
            return Snapshot(fetched_at=self.clock())
        finally:
            self.active -= 1


class FakeArticleSource(BaseArticleSource):
    def __init__(self, articles=None, fail: Exception | None = None):
        super().__init__({})
        self.articles = list(articles or [])
        self.fail = fail
        self.calls: list[tuple] = []

    @property
    def name(self) -> str:
        return "fake_articles"

    async def _result(self, call):
        self.calls.append(call)
        await asyncio.sleep(0)
        if self.fail is not None:
            raise self.fail
        return list(self.articles)

    async def fetch_top_articles(self, n):
        return await self._result(("top", n))

    async def fetch_by_category(self, category, n):
        return await self._result(("category", category, n))

    async def fetch_by_tag(self, tag, n):
        return await self._result(("tag", tag, n))


class FakeAdSource(BaseAdSource):
    def __init__(self, slots=None, fail: Exception | None = None):
        super().__init__({})
        self.slots = slots or {}
        self.fail = fail
        self.calls = 0

    @property
    def name(self) -> str:
        return "fake_ads"

    async def fetch_ad_slots(self):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return dict(self.slots)


class FakeRatesSource(BaseAuxiliarySource):
    def __init__(self, rates=None, fail: Exception | None = None):
        super().__init__({})
        self.rates = rates if rates is not None else [CurrencyRate("Dólar Blue", 1000.0, 1020.0)]
        self.fail = fail
        self.calls = 0

    @property
    def name(self) -> str:
        return "fake_rates"

    async def fetch_rates(self):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return list(self.rates)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_config(tmp_path):
    """Minimal config for testing (no real backend)."""
    config_text = """
sources:
  articles:
    type: "http_articles"
    base_url: "http://localhost:9999"
  ads:
    type: "http_ads"
    base_url: "http://localhost:9999"
  auxiliary:
    type: "dolarapi"
    enabled: false

cache:
  ttl_seconds: 60
  auxiliary_ttl_seconds: 900
  prefetch_ttl_seconds: 600
  max_entries: 10

snapshot:
  article_limit: 3
  topic_article_limit: 5
  ad_placements: ["Grande Principal", "Sidebar"]

prefetch:
  enabled: true
  top_k: 5
  max_in_flight: 2
  interval_seconds: 3600
  related:
    Deporte: ["Sociedad"]

logging:
  dir: "LOG_DIR"
"""
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(config_text.replace("LOG_DIR", str(tmp_path / "logs")))
    return load_config(str(cfg_path))


def _dt(day: int) -> datetime:
    return datetime(2024, 5, day, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_articles():
    """Articles in source order, deliberately not in display order."""
    return [
        Article(id="a1", title="Inflación de abril", date=_dt(3), category="Economía"),
        Article(id="a2", title="Final del torneo", date=_dt(5), category="Deporte",
                featured_type="featured2"),
        Article(id="a3", title="Nuevo gabinete", date=_dt(4), category="Política",
                featured_type="cover", tags=("Gobierno",)),
        Article(id="a4", title="Estreno de temporada", date=_dt(5), category="Espectáculos"),
        Article(id="a5", title="Operativo en el centro", date=_dt(1), category="Policiales",
                featured_type="featured1"),
    ]


@pytest.fixture
def sample_ads():
    return {
        "Grande Principal": [
            Advertisement(id="ad1", placement="Grande Principal", title="Banner"),
        ],
        "Sidebar": [
            Advertisement(id="ad2", placement="Sidebar", title="Lateral"),
            Advertisement(id="ad3", placement="Sidebar", title="Lateral 2"),
        ],
    }
