"""
SearXNG metasearch client with instance rotation and failover.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pulse.models.content import (
    SEARXNG_SOURCE,
    CanonicalResult,
    Category,
    FactCheck,
    Query,
    SearchInstance,
    SearchOutcome,
)
from pulse.services.failover import FailoverPolicy
from pulse.services.http_transport import HttpTransport
from pulse.services.instance_registry import InstanceRegistry
from pulse.services.normalizer import ResultNormalizer, provider_text
from pulse.utils.error_monitoring import ParseError, TransientNetworkError

logger = logging.getLogger(__name__)

DEFAULT_ENGINES = "google,bing,duckduckgo,startpage,wikipedia"
FACT_CHECK_SITES_PER_QUERY = 3


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def build_fact_check_query(claim: str, sites: Sequence[str]) -> str:
    """``"<claim>" site:a OR site:b OR site:c`` over the first three sites."""
    scoped = " OR ".join(f"site:{site}" for site in list(sites)[:FACT_CHECK_SITES_PER_QUERY])
    return f'"{claim}" {scoped}'.strip()


def to_fact_check(result: CanonicalResult, normalizer: ResultNormalizer) -> FactCheck:
    return FactCheck(
        title=result.title,
        url=result.url,
        snippet=result.content,
        source=result.source,
        relevance=result.relevance,
        credibility=normalizer.source_credibility(result.source),
        verdict=normalizer.extract_verdict(result.title, result.content),
    )


class QueryExecutor:
    """
    Executes one logical query against the rotated SearXNG instances.

    Never fabricates data: when every attempt fails, RetryExhausted
    propagates to the caller, which decides whether a synthetic source
    should take over.
    """

    def __init__(
        self,
        registry: InstanceRegistry,
        normalizer: ResultNormalizer,
        policy: Optional[FailoverPolicy] = None,
        transport: Optional[HttpTransport] = None,
        engines: str = DEFAULT_ENGINES,
        fact_check_sites: Sequence[str] = ("snopes.com", "factcheck.org", "politifact.com"),
    ):
        self.registry = registry
        self.normalizer = normalizer
        self.policy = policy or FailoverPolicy()
        self.transport = transport or HttpTransport(timeout=self.policy.attempt_timeout)
        self.engines = engines
        self.fact_check_sites = list(fact_check_sites)

    def _params(self, query: Query) -> Dict[str, str]:
        return {
            'q': query.text,
            'format': 'json',
            'categories': ','.join(query.categories),
            'engines': self.engines,
            'time_range': query.time_range,
            'safesearch': '1',
            'pageno': '1',
        }

    async def _search_instance(self, instance: SearchInstance, query: Query) -> SearchOutcome:
        response = await self.transport.get(
            f"{instance.url}/search",
            params=self._params(query),
            headers={'Accept': 'application/json'},
        )
        if response.status != 200:
            raise TransientNetworkError(f"HTTP {response.status} from {instance.url}")

        try:
            data = json.loads(response.text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ParseError(f"Non-JSON response from {instance.url}: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(f"Unexpected JSON payload from {instance.url}: {type(data).__name__}")

        raw_results: List[Dict[str, Any]] = [r for r in _as_list(data.get("results")) if isinstance(r, dict)]
        results = []
        for position, raw in enumerate(raw_results[:query.max_results]):
            url = raw.get("url")
            if not isinstance(url, str) or not url.strip():
                continue
            try:
                results.append(self.normalizer.normalize(raw, query.text, position))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"⚠️ Skipping malformed result #{position} from {instance.url}: {e}")

        suggestions = tuple(provider_text(s) for s in _as_list(data.get("suggestions")) if provider_text(s))
        logger.debug(f"🔍 {instance.url} returned {len(results)} results for '{query.text}'")
        return SearchOutcome(
            query=query,
            results=tuple(results),
            instance=instance.url,
            source=SEARXNG_SOURCE,
            suggestions=suggestions,
            total_results=len(results),
        )

    async def execute_query(self, query: Query) -> SearchOutcome:
        """
        Run ``query`` with failover across instances.

        Raises:
            RetryExhausted: every attempted instance failed
        """
        async def operation(instance: SearchInstance) -> SearchOutcome:
            return await self._search_instance(instance, query)

        return await self.policy.run(operation, self.registry, f"search '{query.text}'")

    async def search(self, query: Query) -> SearchOutcome:
        return await self.execute_query(query)

    async def search_news(self, text: str, time_range: str = "day", max_results: int = 20) -> List[CanonicalResult]:
        """News-category search, filtered to news outlets, breaking items first."""
        outcome = await self.execute_query(
            Query(text=text, categories=("news",), time_range=time_range, max_results=max_results)
        )
        news = [
            r for r in outcome.results
            if self.normalizer.is_news_source(r.url) or r.category == Category.NEWS
        ]
        news.sort(key=lambda r: (not self.normalizer.is_breaking(r.title, r.content), -r.relevance))
        return news

    async def search_fact_check(self, claim: str) -> List[FactCheck]:
        query = Query(
            text=build_fact_check_query(claim, self.fact_check_sites),
            categories=("general",),
            max_results=10,
        )
        outcome = await self.execute_query(query)
        return [to_fact_check(r, self.normalizer) for r in outcome.results]
