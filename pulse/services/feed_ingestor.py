import asyncio
import json
import logging
import re
import time
import xml.sax
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import feedparser
from bs4 import BeautifulSoup

from pulse.models.content import ArticleBatch, CanonicalResult, Category, FeedSource, SearchInstance
from pulse.services.deduplication_service import Deduplicator
from pulse.services.failover import FailoverPolicy
from pulse.services.http_transport import HttpTransport
from pulse.services.instance_registry import InstanceRegistry
from pulse.services.normalizer import ResultNormalizer, extract_domain
from pulse.utils.date_extraction import extract_date_from_content, parse_provider_date
from pulse.utils.error_monitoring import NoResults, ParseError, RetryExhausted, TransientNetworkError

MAX_ITEMS_PER_FEED = 20
FEED_HEADERS = {
    "Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,text/xml;q=0.8,*/*;q=0.7",
}


class ProxyKind(Enum):
    RAW = "raw"
    ALLORIGINS = "allorigins"


@dataclass(frozen=True)
class ProxyHandler:
    """How to address a feed through a proxy and unwrap what comes back"""
    build_url: Callable[[str, str], str]
    unwrap: Callable[[str], str]


def _raw_url(proxy_url: str, feed_url: str) -> str:
    return f"{proxy_url}{feed_url}"


def _raw_body(body: str) -> str:
    return body


def _allorigins_url(proxy_url: str, feed_url: str) -> str:
    return f"{proxy_url}{quote(feed_url, safe='')}"


def _allorigins_body(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ParseError(f"allorigins proxy returned non-JSON body: {e}") from e
    contents = data.get("contents") if isinstance(data, dict) else None
    if not isinstance(contents, str):
        raise ParseError("allorigins proxy response has no 'contents'")
    return contents


PROXY_HANDLERS: Dict[ProxyKind, ProxyHandler] = {
    ProxyKind.RAW: ProxyHandler(build_url=_raw_url, unwrap=_raw_body),
    ProxyKind.ALLORIGINS: ProxyHandler(build_url=_allorigins_url, unwrap=_allorigins_body),
}


def clean_text(html: Optional[str]) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not html:
        return ""
    if '<' in html or '&' in html:
        text = BeautifulSoup(html, "html.parser").get_text(" ")
    else:
        text = html
    return re.sub(r"\s+", " ", text).strip()


def _first_url(entries: Any, predicate: Callable[[Mapping[str, Any]], bool] = lambda e: True) -> Optional[str]:
    for entry in entries or []:
        if not isinstance(entry, Mapping):
            continue
        url = entry.get("url") or entry.get("href")
        if url and predicate(entry):
            return url
    return None


def extract_image(entry: Mapping[str, Any], *html_fragments: str) -> Optional[str]:
    """
    Image lookup order: media:thumbnail, media:content (images only),
    image enclosures, then the first <img src> in the item HTML.
    """
    image = _first_url(entry.get("media_thumbnail"))
    if image:
        return image

    image = _first_url(
        entry.get("media_content"),
        lambda m: m.get("medium") == "image" or str(m.get("type", "")).startswith("image"),
    )
    if image:
        return image

    enclosures = list(entry.get("enclosures") or [])
    enclosures += [link for link in entry.get("links") or [] if link.get("rel") == "enclosure"]
    image = _first_url(enclosures, lambda e: str(e.get("type", "")).startswith("image"))
    if image:
        return image

    for fragment in html_fragments:
        if fragment and '<img' in fragment:
            img = BeautifulSoup(fragment, "html.parser").find("img", src=True)
            if img:
                return img["src"]
    return None


class FeedIngestor:
    """
    RSS/Atom ingestion with proxy failover, a TTL cache and per-category fan-out.

    Attempt 1 goes direct to the publisher; later attempts rotate through the
    configured fetch proxies.
    """

    def __init__(
        self,
        feeds: Mapping[str, Sequence[FeedSource]],
        proxies: Iterable[Any] = (),
        transport: Optional[HttpTransport] = None,
        policy: Optional[FailoverPolicy] = None,
        normalizer: Optional[ResultNormalizer] = None,
        deduplicator: Optional[Deduplicator] = None,
        cache_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logging.getLogger(__name__)
        self.feeds: Dict[str, List[FeedSource]] = {k: list(v) for k, v in feeds.items()}
        self.policy = policy or FailoverPolicy(max_attempts=3, backoff_seconds=1.0, attempt_timeout=10.0)
        self.transport = transport or HttpTransport(timeout=self.policy.attempt_timeout)
        self.normalizer = normalizer or ResultNormalizer({})
        self.deduplicator = deduplicator or Deduplicator()

        self.proxy_kinds: Dict[str, ProxyKind] = {}
        for proxy in proxies:
            url, kind = self._proxy_fields(proxy)
            try:
                self.proxy_kinds[url] = ProxyKind(kind)
            except ValueError:
                self.logger.warning(f"⚠️ Ignoring proxy {url} with unknown kind '{kind}'")
        self.proxy_registry = InstanceRegistry(self.proxy_kinds.keys(), name="proxy")

        # Cache for the session with TTL support
        self._cache: Dict[str, Tuple[List[CanonicalResult], float]] = {}
        self._cache_ttl = cache_ttl
        self._clock = clock

        self.logger.info(
            f"Initialized feed ingestor with {sum(len(v) for v in self.feeds.values())} feeds "
            f"across {len(self.feeds)} categories and {len(self.proxy_registry)} proxies"
        )

    @staticmethod
    def _proxy_fields(proxy: Any) -> Tuple[str, str]:
        if isinstance(proxy, Mapping):
            return proxy["url"], str(proxy.get("kind", "raw")).lower()
        if isinstance(proxy, str):
            return proxy, ProxyKind.RAW.value
        return proxy.url, str(getattr(proxy, "kind", "raw")).lower()

    async def _fetch_direct(self, feed_url: str) -> str:
        response = await self.transport.get(feed_url, headers=FEED_HEADERS)
        if response.status != 200:
            raise TransientNetworkError(f"HTTP {response.status} for {feed_url}")
        return response.text

    async def _fetch_via_proxy(self, proxy: SearchInstance, feed_url: str) -> str:
        handler = PROXY_HANDLERS[self.proxy_kinds[proxy.url]]
        response = await self.transport.get(handler.build_url(proxy.url, feed_url), headers=FEED_HEADERS)
        if response.status != 200:
            raise TransientNetworkError(f"HTTP {response.status} from proxy {proxy.url}")
        return handler.unwrap(response.text)

    async def _fetch_with_retry(self, feed_url: str) -> str:
        used: Dict[int, SearchInstance] = {}

        async def attempt_fn(attempt: int) -> str:
            if attempt == 1 or len(self.proxy_registry) == 0:
                return await self._fetch_direct(feed_url)
            proxy = self.proxy_registry.next_instance()
            used[attempt] = proxy
            body = await self._fetch_via_proxy(proxy, feed_url)
            self.proxy_registry.record_success(proxy)
            return body

        def on_failure(attempt: int, error: BaseException) -> None:
            if attempt in used:
                self.proxy_registry.record_failure(used[attempt], error)

        return await self.policy.run_attempts(attempt_fn, f"feed {feed_url}", on_failure)

    async def fetch_feed(self, feed_url: str, category: Optional[str] = None) -> List[CanonicalResult]:
        """
        Fetch and parse one feed. Never raises for network or parse failures:
        those are logged and yield an empty list.
        """
        cached = self._cache.get(feed_url)
        if cached:
            items, cached_at = cached
            if self._clock() - cached_at < self._cache_ttl:
                self.logger.debug(f"Using cached feed data for {feed_url}: {len(items)} items")
                return list(items)
            del self._cache[feed_url]

        try:
            content = await self._fetch_with_retry(feed_url)
        except RetryExhausted as e:
            self.logger.warning(f"❌ Feed {feed_url} unreachable: {e}")
            return []

        try:
            items = self.parse_feed(content, feed_url, category)
        except ParseError as e:
            self.logger.warning(f"⚠️ Skipping malformed feed {feed_url}: {e}")
            return []

        self._cache[feed_url] = (items, self._clock())
        self.logger.debug(f"Cached {len(items)} items for {feed_url}")
        return list(items)

    def parse_feed(self, content: str, feed_url: str, category: Optional[str] = None) -> List[CanonicalResult]:
        """
        Parse RSS/Atom content into CanonicalResults.

        Raises:
            ParseError: the document is not well-formed XML
        """
        parsed = feedparser.parse(content or "")
        if parsed.get("bozo") and isinstance(parsed.get("bozo_exception"), xml.sax.SAXException):
            raise ParseError(f"{feed_url}: {parsed.get('bozo_exception')}")

        hint = Category.parse(category, default=Category.GENERAL)
        items: List[CanonicalResult] = []
        for entry in parsed.entries[:MAX_ITEMS_PER_FEED]:
            item = self._parse_entry(entry, feed_url, hint)
            if item is not None:
                items.append(item)
        return items

    def _parse_entry(self, entry: Mapping[str, Any], feed_url: str, hint: Category) -> Optional[CanonicalResult]:
        title = clean_text(entry.get("title"))
        link = (entry.get("link") or "").strip()
        if not link and str(entry.get("id", "")).startswith("http"):
            link = entry["id"]
        if not title or not link:
            self.logger.debug(f"Skipping item without title or link in {feed_url}")
            return None

        description_html = entry.get("summary") or entry.get("description") or ""
        content_html = ""
        if entry.get("content"):
            content_html = entry["content"][0].get("value", "") or ""
        description = clean_text(description_html) or clean_text(content_html) or title

        published = (
            parse_provider_date(entry.get("published_parsed") or entry.get("updated_parsed"))
            or parse_provider_date(entry.get("published") or entry.get("updated"))
            or extract_date_from_content(description)
        )

        category = self.normalizer.categorize(f"{title} {description}")
        if category == Category.GENERAL:
            category = hint

        return CanonicalResult(
            title=title,
            url=link,
            content=description,
            source=extract_domain(link),
            category=category,
            published_date=published,
            image_url=extract_image(entry, description_html, content_html),
            author=clean_text(entry.get("author")) or None,
        )

    @staticmethod
    def _newest_first(items: List[CanonicalResult]) -> List[CanonicalResult]:
        return sorted(
            items,
            key=lambda a: a.published_date.timestamp() if a.published_date else float("-inf"),
            reverse=True,
        )

    async def fetch_real_world_articles(self, category: str = "news", limit: int = 20) -> ArticleBatch:
        """
        Fetch every feed of ``category`` concurrently, merge newest-first,
        deduplicate and truncate.

        Raises:
            NoResults: no feed of the category produced a usable article
        """
        feeds = self.feeds.get(category)
        if not feeds:
            self.logger.info(f"No feeds for category '{category}', using news feeds")
            feeds = self.feeds.get("news", [])

        self.logger.info(f"🌐 Fetching {category} articles from {len(feeds)} feeds...")
        results = await asyncio.gather(
            *(self.fetch_feed(feed.url, feed.category) for feed in feeds),
            return_exceptions=True,
        )

        merged: List[CanonicalResult] = []
        for feed, result in zip(feeds, results):
            if isinstance(result, BaseException):
                self.logger.error(f"💥 Unexpected failure fetching {feed.url}: {result}")
                continue
            self.logger.debug(f"✅ {len(result)} articles from {extract_domain(feed.url)}")
            merged.extend(result)

        unique = self.deduplicator.dedupe(self._newest_first(merged))
        if not unique:
            raise NoResults(f"No articles available for category '{category}'")

        self.logger.info(f"📰 {len(unique)} unique {category} articles ({len(merged)} fetched)")
        return ArticleBatch(articles=tuple(unique[:limit]), total_results=len(unique), source="rss")

    async def search_real_world_articles(self, query: str, limit: int = 20) -> ArticleBatch:
        """
        Keyword search over recent feed articles from every category.

        Ranking: each query word found in the title scores 3, in the
        description 1.
        """
        categories = list(self.feeds.keys())
        batches = await asyncio.gather(
            *(self.fetch_real_world_articles(c, 10) for c in categories),
            return_exceptions=True,
        )

        pool: List[CanonicalResult] = []
        for category, batch in zip(categories, batches):
            if isinstance(batch, NoResults):
                continue
            if isinstance(batch, BaseException):
                self.logger.warning(f"Failed to fetch {category} articles: {batch}")
                continue
            pool.extend(batch.articles)
        if not pool:
            raise NoResults(f"No feed articles available to search for '{query}'")

        words = query.lower().split()

        def score(article: CanonicalResult) -> int:
            title = article.title.lower()
            description = article.content.lower()
            return sum((3 if w in title else 0) + (1 if w in description else 0) for w in words)

        matching = [a for a in pool if score(a) > 0]
        matching.sort(key=score, reverse=True)
        return ArticleBatch(articles=tuple(matching[:limit]), total_results=len(matching), source="rss-search")
