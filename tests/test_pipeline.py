from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeTransport, StaticSource, json_response, make_result
from pulse.models.content import BackgroundContext, FeedSource, TrendingCandidate
from pulse.pipeline.pulse_pipeline import PulsePipeline, PulseResponse
from pulse.services.http_transport import HttpResponse
from pulse.utils.error_monitoring import NoResults, RetryExhausted
from pulse.utils.settings import PulseConfig

SEARX = "https://searx-a.test"
FEED = "https://feed.test/rss.xml"


@pytest.fixture
def config(category_keywords):
    return PulseConfig(
        search_instances=[SEARX],
        feeds={"news": [FeedSource(FEED, "news")]},
        category_keywords=category_keywords,
        trending_candidates=[TrendingCandidate("alpha", "news", 1.0)],
        fact_check_sites=["snopes.com"],
        news_domains=["reuters.com"],
        max_attempts=1,
        backoff_seconds=0.0,
    )


def pipeline_with(config, source=None, transport=None, background=None):
    background = background or MagicMock(lookup=AsyncMock(side_effect=NoResults("none")))
    return PulsePipeline(config, transport=transport or FakeTransport(), source=source, background_service=background)


@pytest.mark.asyncio
async def test_discover_deduplicates(config):
    source = StaticSource({"quantum": [
        make_result("AI Breakthrough in Quantum Computing", url="https://a.test/1"),
        make_result("Quantum Computing AI Breakthrough Reported", url="https://b.test/2"),
        make_result("Unrelated market story", url="https://c.test/3"),
    ]})
    pipeline = pipeline_with(config, source)

    response = await pipeline.discover("quantum", category="technology", max_results=10)

    assert response.ok
    assert [r.url for r in response.data.results] == ["https://a.test/1", "https://c.test/3"]
    assert response.data.total_results == 2
    assert source.queries[0].categories == ("technology",)
    assert response.duration_ms >= 0


@pytest.mark.asyncio
async def test_core_failures_come_back_as_errors(config):
    pipeline = pipeline_with(config, StaticSource(default=RetryExhausted("search 'x'", [])))

    response = await pipeline.trending()

    assert not response.ok
    assert response.data == []
    assert response.error["type"] == "NoResults"
    assert response.error["severity"] == "info"

    response = await pipeline.discover("x")
    assert response.error["type"] == "RetryExhausted"
    assert response.error["severity"] == "high"
    assert pipeline.health()["errors"]["total_errors"] == 2


@pytest.mark.asyncio
async def test_unexpected_errors_propagate(config):
    pipeline = pipeline_with(config, StaticSource(default=KeyError("bug")))
    with pytest.raises(KeyError):
        await pipeline.discover("x")


@pytest.mark.asyncio
async def test_trending_placeholders(config):
    pipeline = pipeline_with(config, StaticSource(default=RetryExhausted("search", [])))

    response = await pipeline.trending(placeholders=True)

    assert response.ok
    assert response.data[0].source == "fallback"
    assert response.to_dict()["data"][0]["trending_score"] == 0.0


@pytest.mark.asyncio
async def test_news_uses_search_instances(config):
    transport = FakeTransport({SEARX: json_response({"results": [
        {"title": "Breaking: markets fall", "url": "https://www.reuters.com/m", "content": "markets"},
        {"title": "Markets blog", "url": "https://blog.test/m", "content": "markets"},
    ]})})
    pipeline = pipeline_with(config, transport=transport)

    response = await pipeline.news("markets")

    assert response.ok
    assert [r.source for r in response.data] == ["reuters.com"]
    assert pipeline.health()["search"]["endpoints"][0]["success_count"] == 1


@pytest.mark.asyncio
async def test_discover_survives_malformed_provider_entries(config):
    transport = FakeTransport({SEARX: json_response({"results": [
        {"title": "Good", "url": "https://good.test/1", "content": "good news"},
        {"title": 12345, "url": "https://odd.test/2", "content": ["numeric", "title"]},
        {"title": "Missing link", "url": None},
    ]})})
    pipeline = pipeline_with(config, transport=transport)

    response = await pipeline.discover("good")

    assert response.ok
    assert [(r.title, r.url) for r in response.data.results] == [
        ("Good", "https://good.test/1"),
        ("12345", "https://odd.test/2"),
    ]
    assert response.data.results[1].content == "numeric, title"


@pytest.mark.asyncio
async def test_feeds_without_any_article(config):
    transport = FakeTransport({FEED: HttpResponse(500, "")})
    pipeline = pipeline_with(config, transport=transport)

    response = await pipeline.feeds("news")

    assert response.error["type"] == "NoResults"
    assert response.to_dict()["ok"] is False


@pytest.mark.asyncio
async def test_summarize_article_from_mapping_forwards_context(config):
    background = MagicMock(lookup=AsyncMock(return_value=BackgroundContext(topic="Volcano", summary="hot")))
    summarizer = MagicMock()
    summarizer.summarize = AsyncMock(return_value={"summary": "short", "key_points": []})
    pipeline = pipeline_with(config, StaticSource(), background=background)

    response = await pipeline.summarize_article(
        {"title": "Volcano erupts in Iceland", "description": "Flights grounded", "url": "https://news.test/v"},
        summarizer,
    )

    assert response.ok
    context = response.data["context"]
    assert context.article.title == "Volcano erupts in Iceland"
    assert context.article.content == "Flights grounded"
    assert context.background[0].topic == "Volcano"
    summarizer.summarize.assert_awaited_once_with(context)
    assert response.data["summary"]["summary"] == "short"


def test_health_reports_registries(config):
    config.fetch_proxies = []
    health = pipeline_with(config).health()
    assert health["search"]["total"] == 1
    assert health["proxies"]["total"] == 0
    assert health["errors"]["total_errors"] == 0


def test_response_serialization():
    response = PulseResponse(data=[make_result("A")], duration_ms=12.34)
    payload = response.to_dict()
    assert payload["ok"] is True
    assert payload["data"][0]["title"] == "A"
    assert payload["durationMs"] == 12.3


def test_context_searches_get_the_executor_failover_budget(config):
    config.max_attempts = 3
    config.backoff_seconds = 1.0
    config.search_timeout = 2.0
    config.context_timeout = 5.0

    pipeline = pipeline_with(config, StaticSource())

    assert pipeline.context_assembler.lookup_timeout == 5.0
    assert pipeline.context_assembler.search_timeout == pytest.approx(3 * 2.0 + 1.0 + 2.0)
