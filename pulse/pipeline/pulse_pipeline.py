"""
Pipeline facade: the entry points a host application calls (discovery,
trending, timeline, feeds, fact checks, article context, health).

Every call returns a PulseResponse. Failures from the retrieval core are
reported through the ErrorHandler and come back as ``response.error``
instead of propagating into the host.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pulse.models.content import (
    ArticleBatch,
    CanonicalResult,
    FactCheck,
    Query,
    SearchOutcome,
    TimelineReport,
    TrendingTopic,
)
from pulse.services.collaborators import SearchSource, Summarizer, TimelineAnalyzer
from pulse.services.context_assembler import ContextAssembler
from pulse.services.data_sources import SourceKind, create_search_source
from pulse.services.deduplication_service import Deduplicator
from pulse.services.failover import FailoverPolicy
from pulse.services.feed_ingestor import FeedIngestor
from pulse.services.http_transport import HttpTransport
from pulse.services.instance_registry import InstanceRegistry
from pulse.services.normalizer import ResultNormalizer
from pulse.services.searxng import QueryExecutor
from pulse.services.timeline import TimelineSynthesizer
from pulse.services.trending import FailurePolicy, TrendingAggregator
from pulse.services.wikipedia import WikipediaContextService
from pulse.utils.error_monitoring import ErrorHandler, PulseError
from pulse.utils.logging_config import PerformanceTracker, log_pipeline_metrics
from pulse.utils.settings import PulseConfig, load_config


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass
class PulseResponse:
    """Typed result of a facade call: ``data`` on success, ``error`` otherwise."""
    data: Any = None
    error: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "data": _serialize(self.data),
            "error": self.error,
            "durationMs": round(self.duration_ms, 1),
        }


class PulsePipeline:
    """
    Wires configuration, endpoints and services together.

    ``transport`` and ``source`` are injectable so the whole facade can run
    against fakes.
    """

    def __init__(
        self,
        config: Optional[PulseConfig] = None,
        transport: Optional[HttpTransport] = None,
        source: Optional[SearchSource] = None,
        background_service=None,
    ):
        self.config = config or load_config()
        self.logger = logging.getLogger(__name__)
        self.error_handler = ErrorHandler()
        cfg = self.config

        self.transport = transport or HttpTransport(timeout=cfg.search_timeout)
        self.normalizer = ResultNormalizer.from_config(cfg)
        self.search_registry = InstanceRegistry(cfg.search_instances, name="search")
        self.executor = QueryExecutor(
            registry=self.search_registry,
            normalizer=self.normalizer,
            policy=FailoverPolicy(
                max_attempts=cfg.max_attempts,
                backoff_seconds=cfg.backoff_seconds,
                attempt_timeout=cfg.search_timeout,
            ),
            transport=self.transport,
            engines=cfg.search_engines,
            fact_check_sites=cfg.fact_check_sites,
        )
        kind = SourceKind.LIVE_WITH_FALLBACK if cfg.synthetic_fallback else SourceKind.LIVE
        self.source = source or create_search_source(kind, self.executor)

        self.deduplicator = Deduplicator(cfg.dedup_threshold)
        self.feed_ingestor = FeedIngestor(
            feeds=cfg.feeds,
            proxies=cfg.fetch_proxies,
            transport=self.transport,
            policy=FailoverPolicy(
                max_attempts=cfg.max_attempts,
                backoff_seconds=cfg.backoff_seconds,
                attempt_timeout=cfg.feed_timeout,
            ),
            normalizer=self.normalizer,
            deduplicator=Deduplicator(cfg.dedup_threshold),
            cache_ttl=cfg.feed_cache_ttl,
        )
        self.trending_aggregator = TrendingAggregator(self.source, candidates=cfg.trending_candidates)
        self.timeline_synthesizer = TimelineSynthesizer(self.source, epsilon=cfg.timeline_epsilon)
        self.context_assembler = ContextAssembler(
            source=self.source,
            background_service=background_service or WikipediaContextService(self.transport),
            normalizer=self.normalizer,
            fact_check_sites=cfg.fact_check_sites,
            lookup_timeout=cfg.context_timeout,
            search_timeout=self.executor.policy.total_budget(),
        )

    async def _guard(
        self,
        service: str,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        empty: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> PulseResponse:
        tracker = PerformanceTracker(f"{service}.{operation}", self.logger)
        try:
            with tracker:
                data = await call()
        except PulseError as e:
            error_context = self.error_handler.handle_error(e, service, operation, context)
            return PulseResponse(
                data=empty,
                error={
                    "type": error_context.error_type,
                    "message": error_context.error_message,
                    "severity": error_context.severity,
                    "recovery": error_context.recovery_action,
                },
                duration_ms=tracker.duration_ms,
            )
        return PulseResponse(data=data, duration_ms=tracker.duration_ms)

    async def discover(
        self,
        query: str,
        category: Optional[str] = None,
        time_range: str = "",
        max_results: int = 20,
    ) -> PulseResponse:
        """Search, then drop near-duplicate results."""
        async def call() -> SearchOutcome:
            outcome = await self.source.search(Query(
                text=query,
                categories=(category or "general",),
                time_range=time_range,
                max_results=max_results,
            ))
            unique = self.deduplicator.dedupe(outcome.results)
            stats = self.deduplicator.get_statistics()
            log_pipeline_metrics(
                self.logger, "discover.dedup", len(outcome.results), len(unique), 0.0,
                url_filtered=stats["url_filtered"], title_filtered=stats["title_filtered"],
            )
            return dataclasses.replace(outcome, results=tuple(unique), total_results=len(unique))

        return await self._guard("discovery", "discover", call, context={"query": query})

    async def news(self, query: str, time_range: str = "day", max_results: int = 20) -> PulseResponse:
        async def call() -> List[CanonicalResult]:
            return await self.executor.search_news(query, time_range, max_results)

        return await self._guard("search", "news", call, empty=[], context={"query": query})

    async def verify_claim(self, claim: str) -> PulseResponse:
        async def call() -> List[FactCheck]:
            return await self.executor.search_fact_check(claim)

        return await self._guard("search", "fact_check", call, empty=[], context={"claim": claim})

    async def trending(self, placeholders: bool = False) -> PulseResponse:
        policy = FailurePolicy.PLACEHOLDER if placeholders else FailurePolicy.DROP

        async def call() -> List[TrendingTopic]:
            return await self.trending_aggregator.compute_trending(failure_policy=policy)

        return await self._guard("trending", "compute_trending", call, empty=[])

    async def timeline(self, topic: str, analyzer: Optional[TimelineAnalyzer] = None) -> PulseResponse:
        async def call() -> TimelineReport:
            return await self.timeline_synthesizer.generate_event_timeline(topic, analyzer)

        return await self._guard("timeline", "generate_event_timeline", call, context={"topic": topic})

    async def feeds(self, category: str = "news", limit: int = 20) -> PulseResponse:
        async def call() -> ArticleBatch:
            return await self.feed_ingestor.fetch_real_world_articles(category, limit)

        return await self._guard("feeds", "fetch_real_world_articles", call, context={"category": category})

    async def search_feeds(self, query: str, limit: int = 20) -> PulseResponse:
        async def call() -> ArticleBatch:
            return await self.feed_ingestor.search_real_world_articles(query, limit)

        return await self._guard("feeds", "search_real_world_articles", call, context={"query": query})

    def _as_article(self, article: Union[CanonicalResult, Mapping[str, Any]]) -> CanonicalResult:
        if isinstance(article, CanonicalResult):
            return article
        raw = dict(article)
        raw.setdefault("content", raw.get("description", ""))
        return self.normalizer.normalize(raw, raw.get("title", ""))

    async def summarize_article(
        self,
        article: Union[CanonicalResult, Mapping[str, Any]],
        summarizer: Optional[Summarizer] = None,
    ) -> PulseResponse:
        """
        Assemble retrieval context for ``article`` and, when a summarizer is
        given, forward the context to it unchanged.
        """
        canonical = self._as_article(article)

        async def call() -> Dict[str, Any]:
            context = await self.context_assembler.assemble_context(canonical)
            summary = await summarizer.summarize(context) if summarizer else None
            return {"context": context, "summary": summary}

        return await self._guard("context", "summarize_article", call, context={"title": canonical.title})

    def health(self) -> Dict[str, Any]:
        return {
            "search": self.search_registry.health_report(),
            "proxies": self.feed_ingestor.proxy_registry.health_report(),
            "errors": self.error_handler.get_error_summary(),
        }

    async def close(self) -> None:
        await self.transport.close()
