"""
Trending topics: a weighted fan-out of candidate queries scored by how much
live coverage each one returns.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Sequence

from pulse.models.content import (
    FALLBACK_SOURCE,
    Query,
    TrendingCandidate,
    TrendingTopic,
)
from pulse.services.collaborators import SearchSource
from pulse.utils.error_monitoring import NoResults

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATES: Sequence[TrendingCandidate] = (
    TrendingCandidate("breaking news today", "news", 1.0),
    TrendingCandidate("latest technology AI developments", "technology", 0.9),
    TrendingCandidate("global events happening now", "world", 0.8),
    TrendingCandidate("scientific breakthroughs", "science", 0.7),
    TrendingCandidate("climate change latest updates", "environment", 0.8),
    TrendingCandidate("health medical news today", "health", 0.7),
    TrendingCandidate("economic market trends", "business", 0.6),
    TrendingCandidate("cybersecurity threats alerts", "security", 0.8),
)

RESULTS_PER_TOPIC = 5


class FailurePolicy(Enum):
    """What to do with a candidate whose search failed"""
    DROP = "drop"
    PLACEHOLDER = "placeholder"


class TrendingAggregator:
    def __init__(
        self,
        source: SearchSource,
        candidates: Optional[Sequence[TrendingCandidate]] = None,
        expected_count: int = 8,
        failure_policy: FailurePolicy = FailurePolicy.DROP,
    ):
        self.source = source
        self.candidates = list(candidates or DEFAULT_CANDIDATES)
        self.expected_count = expected_count
        self.failure_policy = failure_policy

    def score(self, candidate: TrendingCandidate, result_count: int) -> float:
        return candidate.weight * (result_count / self.expected_count) * 100

    async def _topic_for(self, candidate: TrendingCandidate) -> TrendingTopic:
        outcome = await self.source.search(Query(
            text=candidate.query,
            categories=("news", "general"),
            time_range="day",
            max_results=self.expected_count,
        ))
        # Synthetic placeholders are shown but never ranked
        live = [r for r in outcome.results if not r.is_fallback]
        return TrendingTopic(
            query=candidate.query,
            score=self.score(candidate, len(live)),
            category=candidate.category,
            results=outcome.results[:RESULTS_PER_TOPIC],
            source=outcome.source,
        )

    @staticmethod
    def _placeholder(candidate: TrendingCandidate) -> TrendingTopic:
        return TrendingTopic(
            query=candidate.query,
            score=0.0,
            category=candidate.category,
            results=(),
            source=FALLBACK_SOURCE,
        )

    async def compute_trending(
        self,
        candidates: Optional[Sequence[TrendingCandidate]] = None,
        failure_policy: Optional[FailurePolicy] = None,
    ) -> List[TrendingTopic]:
        """
        Run every candidate concurrently and rank by trending score.

        Returns:
            Topics sorted by score descending; ties keep candidate order

        Raises:
            NoResults: no candidate produced a topic
        """
        candidates = list(candidates if candidates is not None else self.candidates)
        policy = failure_policy or self.failure_policy

        outcomes = await asyncio.gather(
            *(self._topic_for(c) for c in candidates),
            return_exceptions=True,
        )

        topics: List[TrendingTopic] = []
        for candidate, outcome in zip(candidates, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.warning(f"⚠️ Trending candidate '{candidate.query}' failed: {outcome}")
                if policy == FailurePolicy.PLACEHOLDER:
                    topics.append(self._placeholder(candidate))
                continue
            topics.append(outcome)

        if not topics:
            raise NoResults("No trending candidate produced results")

        topics.sort(key=lambda t: t.score, reverse=True)
        logger.info(f"📈 Computed {len(topics)} trending topics from {len(candidates)} candidates")
        return topics
