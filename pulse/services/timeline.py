"""
Event timelines for a topic, assembled from several phrasings of the same
search and ordered by relevance band, then recency.
"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pulse.models.content import Query, TimelineEvent, TimelineReport, utcnow
from pulse.services.collaborators import SearchSource, TimelineAnalyzer
from pulse.utils.date_extraction import resolve_event_date
from pulse.utils.error_monitoring import NoResults

logger = logging.getLogger(__name__)

QUERY_TEMPLATES = (
    '"{topic}" timeline chronology',
    '"{topic}" history development',
    'when did "{topic}" start begin',
    '"{topic}" latest recent developments',
    '"{topic}" events sequence order',
)


class TimelineSynthesizer:
    """
    Builds a TimelineEvent list for a topic.

    Ordering: events are grouped into relevance bands of width ``epsilon``
    (higher band first) and sorted by date, newest first, within a band.
    """

    def __init__(
        self,
        source: SearchSource,
        max_events: int = 15,
        results_per_query: int = 5,
        epsilon: float = 0.1,
        clock: Callable[[], datetime] = utcnow,
    ):
        if epsilon <= 0:
            raise ValueError("epsilon must be positive")
        self.source = source
        self.max_events = max_events
        self.results_per_query = results_per_query
        self.epsilon = epsilon
        self.clock = clock

    def queries_for(self, topic: str) -> List[Query]:
        return [
            Query(
                text=template.format(topic=topic),
                categories=("general", "news"),
                max_results=self.results_per_query,
            )
            for template in QUERY_TEMPLATES
        ]

    def band(self, relevance: float) -> int:
        # Nudge so exact multiples of epsilon land in their own band despite float error
        return math.floor(relevance / self.epsilon + 1e-9)

    def order(self, events: List[TimelineEvent]) -> List[TimelineEvent]:
        return sorted(events, key=lambda e: (-self.band(e.relevance), -e.date.timestamp()))

    async def build_timeline(self, topic: str) -> List[TimelineEvent]:
        """
        Raises:
            NoResults: the whole fan-out produced no live events
        """
        now = self.clock()
        queries = self.queries_for(topic)
        outcomes = await asyncio.gather(
            *(self.source.search(q) for q in queries),
            return_exceptions=True,
        )

        by_url: Dict[str, TimelineEvent] = {}
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.warning(f"Timeline search failed for: {query.text} ({outcome})")
                continue
            if outcome.is_fallback:
                logger.debug(f"Ignoring fallback results for timeline query: {query.text}")
                continue

            for result in outcome.results:
                if result.is_fallback:
                    continue
                date, estimated = resolve_event_date(result.published_date, result.content, now)
                event = TimelineEvent(
                    date=date,
                    title=result.title,
                    description=result.content,
                    source=result.source,
                    relevance=result.relevance,
                    url=result.url,
                    category=result.category,
                    date_estimated=estimated,
                )
                existing = by_url.get(result.url)
                if existing is None or event.relevance > existing.relevance:
                    by_url[result.url] = event

        if not by_url:
            raise NoResults(f"No timeline events found for '{topic}'")

        events = self.order(list(by_url.values()))[:self.max_events]
        logger.info(f"🗓️ Built timeline for '{topic}' with {len(events)} events")
        return events

    async def generate_event_timeline(
        self,
        topic: str,
        analyzer: Optional[TimelineAnalyzer] = None,
    ) -> TimelineReport:
        events = await self.build_timeline(topic)

        analysis = None
        if analyzer is not None:
            try:
                analysis = await analyzer.analyze(topic, events)
            except Exception as e:
                logger.warning(f"⚠️ Timeline analysis failed for '{topic}': {e}")

        return TimelineReport(topic=topic, events=tuple(events), analysis=analysis)
