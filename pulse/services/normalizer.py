"""
Turns raw backend results into CanonicalResult records: domain extraction,
keyword categorization, positional relevance scoring and date recovery.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from pulse.models.content import LIVE_ORIGIN, CanonicalResult, Category
from pulse.utils.date_extraction import (
    extract_date_from_content,
    extract_date_from_url,
    parse_provider_date,
)

logger = logging.getLogger(__name__)

DEFAULT_CREDIBILITY = 70


def extract_domain(url: Optional[str]) -> str:
    """Host of ``url`` with a leading ``www.`` removed, or ``"unknown"``."""
    try:
        netloc = urlparse(url or "").netloc.lower()
    except ValueError:
        return "unknown"
    host = netloc.rsplit('@', 1)[-1].split(':', 1)[0]
    if host.startswith('www.'):
        host = host[4:]
    return host or "unknown"


def provider_text(value: Any) -> str:
    """
    A provider field as stripped text. Numbers are stringified, lists of
    strings joined with ", "; anything else (objects, booleans) is treated
    as missing.
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(v.strip() for v in value if isinstance(v, str) and v.strip())
    return ""


class ResultNormalizer:
    """
    Scores and categorizes results against configurable keyword and source tables.
    """

    def __init__(
        self,
        category_keywords: Mapping[str, Iterable[str]],
        position_penalty: float = 0.02,
        news_domains: Iterable[str] = (),
        verified_sources: Iterable[str] = (),
        source_credibility: Optional[Mapping[str, int]] = None,
        breaking_keywords: Iterable[str] = (),
    ):
        self.position_penalty = position_penalty
        self.category_table: List[Tuple[Category, Tuple[str, ...]]] = []
        for name, keywords in category_keywords.items():
            try:
                category = Category(name.lower())
            except ValueError:
                logger.warning(f"⚠️ Skipping unknown category '{name}' in keyword table")
                continue
            self.category_table.append((category, tuple(k.lower() for k in keywords)))

        self.news_domains = tuple(news_domains)
        self.verified_sources = tuple(verified_sources)
        self.credibility_table: Dict[str, int] = dict(source_credibility or {})
        self.breaking_keywords = tuple(k.lower() for k in breaking_keywords)

    @classmethod
    def from_config(cls, config) -> "ResultNormalizer":
        return cls(
            category_keywords=config.category_keywords,
            position_penalty=config.position_penalty,
            news_domains=config.news_domains,
            verified_sources=config.verified_sources,
            source_credibility=config.source_credibility,
            breaking_keywords=config.breaking_keywords,
        )

    def categorize(self, text: Optional[str]) -> Category:
        """First category (in table order) with any keyword in ``text`` wins."""
        if not text:
            return Category.GENERAL
        lowered = text.lower()
        for category, keywords in self.category_table:
            if any(keyword in lowered for keyword in keywords):
                return category
        return Category.GENERAL

    def calculate_relevance(self, query: str, text: str, position: int = 0) -> float:
        """
        Token-overlap relevance in [0, 1].

        Exact token matches count 2, partial (substring either way) matches
        count 1; the sum is divided by the number of query tokens and reduced
        by ``position * position_penalty``.
        """
        query_words = (query or "").lower().split()
        if not query_words:
            return 0.0
        text_words = (text or "").lower().split()
        text_set = set(text_words)

        exact = 0
        partial = 0
        for word in query_words:
            if word in text_set:
                exact += 1
            elif any(word in t or t in word for t in text_words):
                partial += 1

        score = (exact * 2 + partial) / len(query_words)
        score -= position * self.position_penalty
        return max(0.0, min(1.0, score))

    def extract_domain(self, url: Optional[str]) -> str:
        return extract_domain(url)

    def normalize(
        self,
        raw: Mapping[str, Any],
        query: str,
        position: int = 0,
        origin: str = LIVE_ORIGIN,
    ) -> CanonicalResult:
        title = provider_text(raw.get("title")) or "Untitled"
        url = provider_text(raw.get("url"))
        content = provider_text(raw.get("content")) or title
        text = f"{title} {content}"

        published = parse_provider_date(raw.get("publishedDate") or raw.get("pubdate"))
        if published is None:
            published = extract_date_from_content(content)
        if published is None:
            published = extract_date_from_url(url)

        return CanonicalResult(
            title=title,
            url=url,
            content=content,
            source=extract_domain(url),
            category=self.categorize(text),
            relevance=self.calculate_relevance(query, text, position),
            published_date=published,
            image_url=provider_text(raw.get("img_src")) or provider_text(raw.get("thumbnail")) or None,
            author=provider_text(raw.get("author")) or None,
            origin=origin,
        )

    def is_breaking(self, title: Optional[str], content: Optional[str]) -> bool:
        text = f"{title or ''} {content or ''}".lower()
        return any(keyword in text for keyword in self.breaking_keywords)

    def is_news_source(self, url: Optional[str]) -> bool:
        domain = extract_domain(url)
        return any(news in domain for news in self.news_domains)

    def is_verified_source(self, source: Optional[str]) -> bool:
        return any(verified in (source or "") for verified in self.verified_sources)

    def source_credibility(self, source: Optional[str]) -> int:
        return self.credibility_table.get(source or "", DEFAULT_CREDIBILITY)

    @staticmethod
    def extract_verdict(title: Optional[str], content: Optional[str]) -> str:
        text = f"{title or ''} {content or ''}".lower()
        if any(word in text for word in ('false', 'debunked', 'misleading')):
            return 'false'
        elif any(word in text for word in ('true', 'confirmed', 'verified')):
            return 'true'
        elif any(word in text for word in ('mixed', 'partially')):
            return 'mixed'
        return 'unverified'
