from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_result
from pulse.models.content import Category, Query, SearchOutcome
from pulse.services.data_sources import (
    LiveSearchSource,
    LiveWithSyntheticFallback,
    SourceKind,
    SyntheticSearchSource,
    create_search_source,
)
from pulse.utils.error_monitoring import RetryExhausted, TransientNetworkError


def live_outcome(query):
    results = (make_result("Live"),)
    return SearchOutcome(query=query, results=results, instance="https://searx.test", total_results=1)


@pytest.mark.asyncio
async def test_synthetic_results_are_tagged_and_deterministic():
    source = SyntheticSearchSource()
    query = Query("solar storms", categories=("science",), max_results=25)

    first = await source.search(query)
    second = await source.search(query)

    assert first.source == "fallback"
    assert first.instance == "synthetic"
    assert first.is_fallback
    assert len(first.results) == 10
    assert all(r.origin == "fallback" for r in first.results)
    assert all(r.category == Category.SCIENCE for r in first.results)
    assert [r.url for r in first.results] == [r.url for r in second.results]
    assert first.results[0].relevance == 1.0
    assert first.results[-1].relevance == 0.5


@pytest.mark.asyncio
async def test_live_source_propagates_retry_exhausted():
    executor = MagicMock()
    executor.execute_query = AsyncMock(side_effect=RetryExhausted("search", [TransientNetworkError("x")]))

    with pytest.raises(RetryExhausted):
        await LiveSearchSource(executor).search(Query("anything"))


@pytest.mark.asyncio
async def test_fallback_composition_serves_live_when_available():
    live = MagicMock()
    live.search = AsyncMock(side_effect=live_outcome)

    outcome = await LiveWithSyntheticFallback(live).search(Query("q"))

    assert outcome.source == "searxng"
    assert not any(r.is_fallback for r in outcome.results)


@pytest.mark.asyncio
async def test_fallback_composition_tags_synthetic_results_when_live_exhausted():
    live = MagicMock()
    live.search = AsyncMock(side_effect=RetryExhausted("search", []))

    outcome = await LiveWithSyntheticFallback(live).search(Query("q", max_results=3))

    assert outcome.is_fallback
    assert len(outcome.results) == 3
    assert all(r.is_fallback for r in outcome.results)


@pytest.mark.asyncio
async def test_fallback_composition_does_not_mask_other_errors():
    live = MagicMock()
    live.search = AsyncMock(side_effect=ValueError("bug"))

    with pytest.raises(ValueError):
        await LiveWithSyntheticFallback(live).search(Query("q"))


def test_create_search_source_dispatch():
    executor = MagicMock()
    assert isinstance(create_search_source(SourceKind.LIVE, executor), LiveSearchSource)
    assert isinstance(create_search_source("synthetic"), SyntheticSearchSource)
    composed = create_search_source("live_with_fallback", executor)
    assert isinstance(composed, LiveWithSyntheticFallback)
    assert composed.live.executor is executor


def test_create_search_source_rejects_bad_input():
    with pytest.raises(ValueError):
        create_search_source("carrier-pigeon", MagicMock())
    with pytest.raises(ValueError):
        create_search_source(SourceKind.LIVE)
