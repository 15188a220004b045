"""
Content models shared by every stage of the retrieval pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


LIVE_ORIGIN = "live"
FALLBACK_ORIGIN = "fallback"

SEARXNG_SOURCE = "searxng"
FALLBACK_SOURCE = "fallback"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, Enum):
    """Topic categories a result can be filed under"""
    GENERAL = "general"
    NEWS = "news"
    WORLD = "world"
    TECHNOLOGY = "technology"
    HEALTH = "health"
    POLITICS = "politics"
    CLIMATE = "climate"
    ENVIRONMENT = "environment"
    BUSINESS = "business"
    SCIENCE = "science"
    SECURITY = "security"

    @classmethod
    def parse(cls, value: Optional[str], default: "Category" = None) -> "Category":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return default if default is not None else cls.GENERAL


class InstanceHealth(Enum):
    """Health of a search instance or fetch proxy"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"


@dataclass
class SearchInstance:
    """A backend endpoint (search instance or fetch proxy) in the rotation."""
    url: str
    health: InstanceHealth = InstanceHealth.HEALTHY
    last_used: Optional[datetime] = None
    success_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None

    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.success_count / total if total > 0 else 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "health": self.health.value,
            "last_used": _iso(self.last_used),
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class Query:
    """One logical search request"""
    text: str
    categories: Tuple[str, ...] = ("general",)
    time_range: str = ""
    max_results: int = 20


@dataclass(frozen=True)
class CanonicalResult:
    """Normalized record used by every downstream consumer, whatever the backend."""
    title: str
    url: str
    content: str
    source: str
    category: Category = Category.GENERAL
    relevance: float = 0.0
    published_date: Optional[datetime] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    origin: str = LIVE_ORIGIN

    def __post_init__(self):
        if not 0.0 <= self.relevance <= 1.0:
            raise ValueError(f"relevance must be within [0, 1], got {self.relevance}")

    @property
    def is_fallback(self) -> bool:
        return self.origin == FALLBACK_ORIGIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "source": self.source,
            "category": self.category.value,
            "relevance": round(self.relevance, 4),
            "publishedDate": _iso(self.published_date),
            "imageUrl": self.image_url,
            "author": self.author,
            "origin": self.origin,
        }


@dataclass(frozen=True)
class SearchOutcome:
    """Results of one executed query plus which instance served it."""
    query: Query
    results: Tuple[CanonicalResult, ...]
    instance: str
    source: str = SEARXNG_SOURCE
    suggestions: Tuple[str, ...] = ()
    total_results: int = 0
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_fallback(self) -> bool:
        return self.source == FALLBACK_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query.text,
            "results": [r.to_dict() for r in self.results],
            "instance": self.instance,
            "source": self.source,
            "suggestions": list(self.suggestions),
            "totalResults": self.total_results,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class TrendingCandidate:
    query: str
    category: str
    weight: float


@dataclass(frozen=True)
class TrendingTopic:
    query: str
    score: float
    category: str
    results: Tuple[CanonicalResult, ...]
    timestamp: datetime = field(default_factory=utcnow)
    source: str = SEARXNG_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "trending_score": round(self.score, 2),
            "category": self.category,
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }


@dataclass(frozen=True)
class TimelineEvent:
    date: datetime
    title: str
    description: str
    source: str
    relevance: float
    url: str = ""
    category: Category = Category.GENERAL
    date_estimated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "title": self.title,
            "description": self.description,
            "source": self.source,
            "url": self.url,
            "relevance": round(self.relevance, 4),
            "category": self.category.value,
            "dateEstimated": self.date_estimated,
        }


@dataclass
class TimelineReport:
    topic: str
    events: Tuple[TimelineEvent, ...]
    analysis: Optional[Dict[str, Any]] = None
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "events": [e.to_dict() for e in self.events],
            "analysis": self.analysis,
            "generatedAt": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class FeedSource:
    """Static feed configuration entry"""
    url: str
    category: str


@dataclass(frozen=True)
class ArticleBatch:
    articles: Tuple[CanonicalResult, ...]
    total_results: int
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "articles": [a.to_dict() for a in self.articles],
            "totalResults": self.total_results,
            "source": self.source,
        }


@dataclass(frozen=True)
class BackgroundContext:
    """Encyclopedic background for one keyword."""
    topic: str
    summary: str
    structured_facts: Mapping[str, str] = field(default_factory=dict)
    related_titles: Tuple[str, ...] = ()
    url: Optional[str] = None
    source: str = "wikipedia"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "summary": self.summary,
            "structuredFacts": dict(self.structured_facts),
            "relatedTitles": list(self.related_titles),
            "url": self.url,
            "source": self.source,
        }


@dataclass(frozen=True)
class FactCheck:
    title: str
    url: str
    snippet: str
    source: str
    relevance: float
    credibility: int
    verdict: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "source": self.source,
            "relevance": round(self.relevance, 4),
            "credibility": self.credibility,
            "verdict": self.verdict,
        }


@dataclass(frozen=True)
class AggregatedContext:
    """
    Everything retrieved about one article, handed as-is to the external
    summarizer. Built once by the ContextAssembler and never mutated.
    """
    topic: str
    article: CanonicalResult
    keywords: Tuple[str, ...] = ()
    background: Tuple[BackgroundContext, ...] = ()
    fact_checks: Tuple[FactCheck, ...] = ()
    related_news: Tuple[CanonicalResult, ...] = ()
    assembled_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "article": self.article.to_dict(),
            "keywords": list(self.keywords),
            "background": [b.to_dict() for b in self.background],
            "factChecks": [f.to_dict() for f in self.fact_checks],
            "relatedNews": [r.to_dict() for r in self.related_news],
            "assembledAt": self.assembled_at.isoformat(),
        }
