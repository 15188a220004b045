import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from pulse.models.content import CanonicalResult, Category, Query, SearchOutcome
from pulse.services.http_transport import HttpResponse
from pulse.utils.error_monitoring import TransientNetworkError


def json_response(data: Any, status: int = 200) -> HttpResponse:
    return HttpResponse(status=status, text=json.dumps(data))


class FakeTransport:
    """
    Prefix-routed stand-in for HttpTransport. A route handler may be an
    HttpResponse, an exception instance, or a callable (sync or async)
    taking (url, params) and returning either.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: List[Tuple[str, Any]] = list((routes or {}).items())
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def add(self, prefix: str, handler: Any) -> None:
        self.routes.append((prefix, handler))

    async def get(self, url, params=None, headers=None) -> HttpResponse:
        self.calls.append((url, dict(params or {})))
        for prefix, handler in self.routes:
            if url.startswith(prefix):
                result = handler(url, params) if callable(handler) else handler
                if asyncio.iscoroutine(result):
                    result = await result
                if isinstance(result, BaseException):
                    raise result
                return result
        raise TransientNetworkError(f"no route for {url}")

    async def close(self) -> None:
        pass

    def urls(self) -> List[str]:
        return [url for url, _ in self.calls]


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class StaticSource:
    """SearchSource fake: maps query text to results, outcomes or exceptions."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, default: Any = ()):
        self.responses = dict(responses or {})
        self.default = default
        self.queries: List[Query] = []

    async def search(self, query: Query) -> SearchOutcome:
        self.queries.append(query)
        value = self.responses.get(query.text, self.default)
        if callable(value) and not isinstance(value, SearchOutcome):
            value = value(query)
            if asyncio.iscoroutine(value):
                value = await value
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, SearchOutcome):
            return value
        results = tuple(value)
        return SearchOutcome(query=query, results=results, instance="https://searx.test", total_results=len(results))


def make_result(
    title: str = "Result",
    url: str = "https://news.example.com/story",
    content: str = "",
    relevance: float = 0.5,
    **kwargs,
) -> CanonicalResult:
    return CanonicalResult(
        title=title,
        url=url,
        content=content or title,
        source=kwargs.pop("source", "news.example.com"),
        category=kwargs.pop("category", Category.GENERAL),
        relevance=relevance,
        **kwargs,
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def category_keywords() -> Dict[str, List[str]]:
    return {
        "technology": ["ai", "tech", "software", "computer", "digital", "cyber", "innovation"],
        "health": ["health", "medical", "disease", "vaccine", "hospital", "doctor", "medicine"],
        "politics": ["government", "election", "political", "congress", "senate", "president", "policy"],
        "climate": ["climate", "environment", "weather", "carbon", "emission", "green", "sustainability"],
        "business": ["business", "economy", "market", "stock", "financial", "company", "trade"],
        "science": ["science", "research", "study", "discovery", "experiment", "scientist", "breakthrough"],
        "security": ["security", "cyber", "attack", "breach", "threat", "vulnerability", "defense"],
    }
