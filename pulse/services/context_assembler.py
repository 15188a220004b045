"""
Retrieval-augmented context for one article: encyclopedic background for its
keywords, fact-check hits and related coverage, gathered in parallel and
handed unchanged to the external summarizer.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, List, Optional, Sequence, Tuple

from pulse.models.content import (
    AggregatedContext,
    BackgroundContext,
    CanonicalResult,
    FactCheck,
    Query,
)
from pulse.services.collaborators import BackgroundContextService, SearchSource
from pulse.services.normalizer import ResultNormalizer
from pulse.services.searxng import build_fact_check_query, to_fact_check

logger = logging.getLogger(__name__)

STOPWORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'that', 'this', 'these', 'those', 'from', 'have', 'has', 'been', 'were', 'will', 'would',
    'about', 'after', 'before', 'into', 'over', 'than', 'their', 'they', 'what', 'when',
    'which', 'while', 'said', 'says', 'more', 'most', 'also',
})

RELATED_NEWS_LIMIT = 5


class ContextAssembler:
    """
    Builds an AggregatedContext. A failed or slow part contributes nothing
    rather than failing the whole assembly. No generative model is called here.

    Background lookups are cut off after ``lookup_timeout``. The fact-check and
    related-news searches get ``search_timeout`` instead, which should cover
    the source's whole failover run; ``None`` leaves them bounded only by the
    source itself.
    """

    def __init__(
        self,
        source: SearchSource,
        background_service: Optional[BackgroundContextService] = None,
        normalizer: Optional[ResultNormalizer] = None,
        fact_check_sites: Sequence[str] = ("snopes.com", "factcheck.org", "politifact.com"),
        max_keywords: int = 5,
        background_lookups: int = 3,
        lookup_timeout: float = 5.0,
        search_timeout: Optional[float] = None,
    ):
        self.source = source
        self.background_service = background_service
        self.normalizer = normalizer or ResultNormalizer({})
        self.fact_check_sites = list(fact_check_sites)
        self.max_keywords = max_keywords
        self.background_lookups = background_lookups
        self.lookup_timeout = lookup_timeout
        self.search_timeout = search_timeout

    def extract_keywords(self, text: str) -> List[str]:
        keywords: List[str] = []
        for word in re.split(r"\W+", (text or "").lower()):
            if len(word) <= 3 or word in STOPWORDS or word in keywords:
                continue
            keywords.append(word)
            if len(keywords) >= self.max_keywords:
                break
        return keywords

    async def _bounded(self, awaitable: Awaitable[Any], label: str, default: Any, timeout: Optional[float]) -> Any:
        try:
            if timeout is None:
                return await awaitable
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ {label} exceeded {timeout}s, continuing without it")
        except Exception as e:
            logger.warning(f"⚠️ {label} failed, continuing without it: {e}")
        return default

    async def _background(self, keyword: str) -> Optional[BackgroundContext]:
        return await self._bounded(
            self.background_service.lookup(keyword), f"Background lookup '{keyword}'", None, self.lookup_timeout
        )

    async def _fact_checks(self, claim: str) -> Tuple[FactCheck, ...]:
        query = Query(text=build_fact_check_query(claim, self.fact_check_sites), max_results=10)
        outcome = await self._bounded(self.source.search(query), "Fact-check search", None, self.search_timeout)
        if outcome is None or outcome.is_fallback:
            return ()
        return tuple(to_fact_check(r, self.normalizer) for r in outcome.results if not r.is_fallback)

    async def _related_news(self, title: str) -> Tuple[CanonicalResult, ...]:
        query = Query(text=f'"{title}" OR related news', categories=("news",))
        outcome = await self._bounded(self.source.search(query), "Related news search", None, self.search_timeout)
        if outcome is None or outcome.is_fallback:
            return ()
        return tuple(r for r in outcome.results if not r.is_fallback)[:RELATED_NEWS_LIMIT]

    async def assemble_context(self, article: CanonicalResult) -> AggregatedContext:
        keywords = self.extract_keywords(f"{article.title} {article.content}")
        lookup_keywords = keywords[:self.background_lookups] if self.background_service else []

        background_task = asyncio.gather(*(self._background(k) for k in lookup_keywords))
        background, fact_checks, related = await asyncio.gather(
            background_task,
            self._fact_checks(article.title),
            self._related_news(article.title),
        )

        found = tuple(b for b in background if b is not None)
        logger.info(
            f"🧩 Assembled context for '{article.title[:50]}': {len(found)} background, "
            f"{len(fact_checks)} fact checks, {len(related)} related"
        )
        return AggregatedContext(
            topic=article.title,
            article=article,
            keywords=tuple(keywords),
            background=found,
            fact_checks=fact_checks,
            related_news=related,
        )
