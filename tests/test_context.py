"""Tests for ContentContext and SnapshotView."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeAdSource, FakeArticleSource

from frontpage.context import ContentContext
from frontpage.models import BehaviorEvent
from frontpage.sources.http import HttpAdSource, HttpArticleSource


@pytest.fixture
def articles(sample_articles):
    return FakeArticleSource(sample_articles)


@pytest.fixture
def ctx(sample_config, articles, sample_ads, clock):
    return ContentContext(sample_config, articles, FakeAdSource(sample_ads), clock=clock)


async def _settle(ctx: ContentContext, key: str) -> None:
    for _ in range(100):
        if not ctx.cache.is_in_flight(key):
            return
        await asyncio.sleep(0)
    raise AssertionError(f"fetch for {key} never finished")


@pytest.mark.asyncio
async def test_view_is_loading_until_first_snapshot(ctx):
    view = ctx.view()
    assert view.loading
    assert view.data is None

    snapshot = await view.load()

    assert not view.loading
    assert view.data is snapshot
    assert view.error is None
    assert [a.id for a in snapshot.articles] == ["a3", "a5", "a2"]
    await ctx.close()


@pytest.mark.asyncio
async def test_revalidation_updates_data_without_loading(ctx, clock):
    view = ctx.view()
    first = await view.load()

    clock.advance(61)
    stale = await view.load()
    assert stale is first
    assert view.stale
    assert not view.loading

    await _settle(ctx, "home")

    assert view.data is not first
    assert view.data.fetched_at > first.fetched_at
    assert not view.stale
    assert not view.loading
    await ctx.close()


@pytest.mark.asyncio
async def test_error_surfaces_when_nothing_to_show(sample_config, clock):
    ctx = ContentContext(
        sample_config, FakeArticleSource(fail=ConnectionError("store down")), clock=clock,
    )
    view = ctx.view("category:Mundo")

    assert await view.load() is None
    assert isinstance(view.error, ConnectionError)
    assert not view.loading
    await ctx.close()


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_data(ctx, articles):
    view = ctx.view()
    first = await view.load()

    articles.fail = ConnectionError("store down")
    result = await view.force_refresh()

    assert result is first
    assert view.data is first
    assert view.error is None
    assert isinstance(ctx.cache.last_error("home"), ConnectionError)
    await ctx.close()


@pytest.mark.asyncio
async def test_force_refresh_replaces_live_data(ctx, articles, clock):
    view = ctx.view()
    first = await view.load()

    clock.advance(5)
    refreshed = await view.force_refresh()

    assert refreshed is not first
    assert view.data is refreshed
    assert [c[0] for c in articles.calls] == ["top", "top"]
    await ctx.close()


@pytest.mark.asyncio
async def test_visit_warms_category_and_related_pages(ctx, articles):
    await ctx.start()
    view = ctx.view()
    await view.load()

    view.record_event(BehaviorEvent.visit_category("Deporte"))
    await ctx.scheduler.drain()

    assert ctx.cache.is_warm("category:Deporte")
    assert ctx.cache.is_warm("category:Sociedad")
    assert ("category", "Deporte", 5) in articles.calls

    # the page the user opens next is served from the warm entry
    calls = len(articles.calls)
    result = await ctx.get("category:Deporte")
    assert not result.stale
    assert len(articles.calls) == calls
    await ctx.close()


@pytest.mark.asyncio
async def test_prefetch_disabled_never_fetches_ahead(sample_config, articles, clock):
    sample_config["prefetch"]["enabled"] = False
    async with ContentContext(sample_config, articles, clock=clock) as ctx:
        ctx.record(BehaviorEvent.visit_category("Deporte"))
        await ctx.scheduler.drain()

        assert not ctx.cache.is_warm("category:Deporte")
        assert articles.calls == []


@pytest.mark.asyncio
async def test_scroll_sampler_feeds_interest(ctx):
    ctx.record(BehaviorEvent.visit_tag("Elecciones"))
    ctx.scroll.observe(80)

    assert ctx.interest.score("tag", "Elecciones") == pytest.approx(14.0)
    await ctx.close()


@pytest.mark.asyncio
async def test_stats_report_every_layer(ctx):
    await ctx.view().load()
    ctx.record(BehaviorEvent.visit_category("Mundo"))
    ctx.record(BehaviorEvent(kind="hover"))

    stats = ctx.stats()

    assert stats["cache"]["misses"] == 1
    assert stats["cache"]["entries"] == 1
    assert stats["prefetch"]["passes"] == 0
    assert stats["topics"] == 1
    assert stats["events_buffered"] == 1
    assert stats["events_dropped"] == 1
    await ctx.close()


@pytest.mark.asyncio
async def test_from_config_builds_configured_sources(sample_config):
    async with ContentContext.from_config(sample_config) as ctx:
        assert isinstance(ctx.assembler.articles, HttpArticleSource)
        assert isinstance(ctx.assembler.ads, HttpAdSource)
        assert ctx.assembler.auxiliary is None
        assert ctx.scheduler.related == {"Deporte": ["Sociedad"]}


def test_from_config_requires_article_source(sample_config):
    del sample_config["sources"]["articles"]
    with pytest.raises(ValueError):
        ContentContext.from_config(sample_config)


@pytest.mark.asyncio
async def test_error_cleared_once_a_snapshot_is_installed(sample_config, clock):
    articles = FakeArticleSource(fail=ConnectionError("store down"))
    ctx = ContentContext(sample_config, articles, clock=clock)
    view = ctx.view("category:Mundo")
    await view.load()
    assert isinstance(view.error, ConnectionError)

    articles.fail = None
    warmed = await ctx.cache.prefetch(
        "category:Mundo", ctx.assembler.loader_for("category:Mundo"),
    )

    assert warmed
    assert view.data is not None
    assert view.error is None
    assert not view.loading
    await ctx.close()


@pytest.mark.asyncio
async def test_topic_pages_share_one_ttl_for_users_and_prefetch(ctx, articles, clock):
    view = ctx.view("category:Deporte")
    await view.load()
    await ctx.view().load()

    clock.advance(300)
    assert ctx.cache.is_warm("category:Deporte")
    assert not ctx.cache.is_warm("home")

    clock.advance(301)
    assert not ctx.cache.is_warm("category:Deporte")
    await ctx.close()


@pytest.mark.asyncio
async def test_close_flushes_pending_scroll_depth(ctx, clock):
    ctx.record(BehaviorEvent.visit_category("Mundo"))
    ctx.scroll.observe(10)
    clock.advance(0.2)
    ctx.scroll.observe(90)

    await ctx.close()

    depths = [e.value for e in ctx.recorder.recent() if e.kind == "scroll"]
    assert depths == [10, 90]
