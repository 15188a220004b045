#!/usr/bin/env python3
"""
Search data sources

Callers depend on the SearchSource protocol and pick a composition:
- "live": the SearXNG QueryExecutor, failures propagate
- "synthetic": deterministic placeholder results, always tagged fallback
- "live_with_fallback": live first, synthetic when every instance failed

Fabricated data only ever comes out of SyntheticSearchSource, and every
record it produces carries origin="fallback".
"""

import logging
from enum import Enum
from typing import Callable, Dict, Optional
from urllib.parse import quote

from pulse.models.content import (
    FALLBACK_ORIGIN,
    FALLBACK_SOURCE,
    CanonicalResult,
    Category,
    Query,
    SearchOutcome,
)
from pulse.services.collaborators import SearchSource
from pulse.services.searxng import QueryExecutor
from pulse.utils.error_monitoring import RetryExhausted

logger = logging.getLogger(__name__)

SYNTHETIC_INSTANCE = "synthetic"
MAX_SYNTHETIC_RESULTS = 10


class SourceKind(Enum):
    LIVE = "live"
    SYNTHETIC = "synthetic"
    LIVE_WITH_FALLBACK = "live_with_fallback"


class LiveSearchSource:
    """Delegates to the executor; RetryExhausted propagates."""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    async def search(self, query: Query) -> SearchOutcome:
        return await self.executor.execute_query(query)


class SyntheticSearchSource:
    """Deterministic placeholder results for demos and offline development."""

    async def search(self, query: Query) -> SearchOutcome:
        category = Category.parse(query.categories[0] if query.categories else None)
        count = min(query.max_results, MAX_SYNTHETIC_RESULTS)
        results = tuple(
            CanonicalResult(
                title=f"{category.value.title()} analysis: {query.text} - placeholder {i + 1}",
                url=f"https://example.com/synthetic/{quote(query.text, safe='')}/{i}",
                content=f"Placeholder coverage of {query.text}. No live source was reachable.",
                source="example.com",
                category=category,
                relevance=max(0.5, 1 - i * 0.1),
                origin=FALLBACK_ORIGIN,
            )
            for i in range(count)
        )
        return SearchOutcome(
            query=query,
            results=results,
            instance=SYNTHETIC_INSTANCE,
            source=FALLBACK_SOURCE,
            total_results=len(results),
        )


class LiveWithSyntheticFallback:
    def __init__(self, live: SearchSource, synthetic: Optional[SearchSource] = None):
        self.live = live
        self.synthetic = synthetic or SyntheticSearchSource()

    async def search(self, query: Query) -> SearchOutcome:
        try:
            return await self.live.search(query)
        except RetryExhausted as e:
            logger.warning(f"⚠️ Live search exhausted for '{query.text}', serving fallback results: {e}")
            return await self.synthetic.search(query)


_SOURCE_BUILDERS: Dict[SourceKind, Callable[[Optional[QueryExecutor]], SearchSource]] = {
    SourceKind.LIVE: lambda executor: LiveSearchSource(executor),
    SourceKind.SYNTHETIC: lambda executor: SyntheticSearchSource(),
    SourceKind.LIVE_WITH_FALLBACK: lambda executor: LiveWithSyntheticFallback(LiveSearchSource(executor)),
}


def create_search_source(kind, executor: Optional[QueryExecutor] = None) -> SearchSource:
    """
    Build a search source from its kind.

    Args:
        kind: SourceKind or its string value
        executor: required for the live kinds

    Raises:
        ValueError: unknown kind, or a live kind without an executor
    """
    kind = SourceKind(kind) if not isinstance(kind, SourceKind) else kind
    if kind != SourceKind.SYNTHETIC and executor is None:
        raise ValueError(f"{kind.value} search source needs a QueryExecutor")
    logger.info(f"Creating {kind.value} search source")
    return _SOURCE_BUILDERS[kind](executor)
