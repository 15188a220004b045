"""
Contracts for the components the retrieval core talks to but does not own:
search sources, background-context lookup, the summarizer and the timeline
analyzer. Concrete search sources live in data_sources.py and the Wikipedia
background service in wikipedia.py; summarizer and analyzer are supplied by
the host application.
"""

from typing import Any, Dict, Protocol, Sequence, runtime_checkable

from pulse.models.content import (
    AggregatedContext,
    BackgroundContext,
    Query,
    SearchOutcome,
    TimelineEvent,
)

SUMMARY_KEYS = (
    "tldr", "keyPoints", "timeline", "context", "implications",
    "trustScore", "relatedTopics", "sources", "confidence",
)
TIMELINE_ANALYSIS_KEYS = ("summary", "keyPatterns", "causeEffect", "futurePredictions", "significance")


@runtime_checkable
class SearchSource(Protocol):
    async def search(self, query: Query) -> SearchOutcome:
        ...


@runtime_checkable
class BackgroundContextService(Protocol):
    async def lookup(self, topic: str) -> BackgroundContext:
        ...


@runtime_checkable
class Summarizer(Protocol):
    """Turns an AggregatedContext into a dict with SUMMARY_KEYS."""

    async def summarize(self, context: AggregatedContext) -> Dict[str, Any]:
        ...


@runtime_checkable
class TimelineAnalyzer(Protocol):
    """Returns a dict with TIMELINE_ANALYSIS_KEYS."""

    async def analyze(self, topic: str, events: Sequence[TimelineEvent]) -> Dict[str, Any]:
        ...
