"""
Wikipedia background-context lookup over the MediaWiki action API.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pulse.models.content import BackgroundContext
from pulse.services.http_transport import HttpTransport
from pulse.utils.error_monitoring import NoResults, ParseError, TransientNetworkError

logger = logging.getLogger(__name__)

WIKI_API_BASE = "https://en.wikipedia.org/w/api.php"
WIKI_PAGE_BASE = "https://en.wikipedia.org/wiki/"

LINK_PATTERN = re.compile(r"\[\[([^|\]]+)(?:\|[^\]]+)?\]\]")
REF_PATTERN = re.compile(r"<ref[^>/]*/>|<ref[^>]*>.*?</ref>", re.DOTALL | re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]+>")
INFOBOX_START = re.compile(r"\{\{\s*infobox", re.IGNORECASE)


def _split_template(body: str) -> List[str]:
    """Split template text on top-level ``|``, ignoring pipes inside links or nested templates."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    i = 0
    while i < len(body):
        pair = body[i:i + 2]
        if pair in ("{{", "[["):
            depth += 1
            current.append(pair)
            i += 2
            continue
        if pair in ("}}", "]]"):
            depth -= 1
            current.append(pair)
            i += 2
            continue
        if body[i] == "|" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(body[i])
        i += 1
    parts.append("".join(current))
    return parts


def _clean_value(value: str) -> str:
    value = REF_PATTERN.sub("", value)
    value = LINK_PATTERN.sub(r"\1", value)
    value = TAG_PATTERN.sub("", value)
    return re.sub(r"\s+", " ", value).strip()


def extract_infobox(wikitext: str) -> Dict[str, str]:
    """
    Pull ``key = value`` pairs out of the first ``{{Infobox ...}}`` template.

    Links are reduced to their target (``[[Paris|the city]]`` -> ``Paris``);
    references and HTML tags are dropped.
    """
    match = INFOBOX_START.search(wikitext or "")
    if not match:
        return {}

    start = match.start() + 2
    depth = 1
    i = start
    while i < len(wikitext) and depth > 0:
        pair = wikitext[i:i + 2]
        if pair == "{{":
            depth += 1
            i += 2
        elif pair == "}}":
            depth -= 1
            i += 2
        else:
            i += 1
    body = wikitext[start:i - 2] if depth == 0 else wikitext[start:]

    infobox: Dict[str, str] = {}
    for part in _split_template(body)[1:]:
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip()
        value = _clean_value(value)
        if key and value:
            infobox[key] = value
    return infobox


class WikipediaContextService:
    """
    Background lookups: search, intro extract, infobox facts and linked
    articles for the best-matching page.
    """

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        api_base: str = WIKI_API_BASE,
        related_limit: int = 5,
    ):
        self.transport = transport or HttpTransport(timeout=10.0)
        self.api_base = api_base
        self.related_limit = related_limit

    async def _query(self, **params: str) -> Dict[str, Any]:
        response = await self.transport.get(
            self.api_base,
            params={"action": "query", "format": "json", **params},
        )
        if response.status != 200:
            raise TransientNetworkError(f"Wikipedia API error: {response.status}")
        try:
            data = json.loads(response.text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Wikipedia returned invalid JSON: {e}") from e
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _first_page(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pages = (data.get("query") or {}).get("pages") or {}
        page = next(iter(pages.values()), None)
        if not page or "missing" in page:
            return None
        return page

    async def search(self, query: str, limit: int = 3) -> List[str]:
        data = await self._query(list="search", srsearch=query, srlimit=str(limit))
        return [hit["title"] for hit in (data.get("query") or {}).get("search", []) if hit.get("title")]

    async def summary(self, title: str) -> str:
        data = await self._query(
            prop="extracts", exintro="true", explaintext="true",
            exsectionformat="plain", titles=title,
        )
        page = self._first_page(data)
        return (page or {}).get("extract", "") or ""

    async def infobox(self, title: str) -> Dict[str, str]:
        data = await self._query(prop="revisions", rvprop="content", rvslots="main", titles=title)
        page = self._first_page(data)
        if not page:
            return {}
        revisions = page.get("revisions") or [{}]
        main = (revisions[0].get("slots") or {}).get("main") or {}
        return extract_infobox(main.get("*") or main.get("content") or "")

    async def related(self, title: str) -> List[str]:
        data = await self._query(
            prop="links", titles=title, pllimit=str(self.related_limit), plnamespace="0",
        )
        page = self._first_page(data)
        return [link["title"] for link in (page or {}).get("links", []) if link.get("title")]

    async def lookup(self, topic: str) -> BackgroundContext:
        """
        Raises:
            NoResults: Wikipedia has no page matching ``topic``
            TransientNetworkError, ParseError: the search itself failed
        """
        titles = await self.search(topic)
        if not titles:
            raise NoResults(f"No Wikipedia page for '{topic}'")
        title = titles[0]

        summary, facts, related = await asyncio.gather(
            self.summary(title), self.infobox(title), self.related(title),
            return_exceptions=True,
        )
        if isinstance(summary, BaseException):
            logger.debug(f"Wikipedia summary failed for {title}: {summary}")
            summary = ""
        if isinstance(facts, BaseException):
            logger.debug(f"Wikipedia infobox failed for {title}: {facts}")
            facts = {}
        if isinstance(related, BaseException):
            logger.debug(f"Wikipedia links failed for {title}: {related}")
            related = []

        return BackgroundContext(
            topic=title,
            summary=summary,
            structured_facts=facts,
            related_titles=tuple(related),
            url=f"{WIKI_PAGE_BASE}{quote(title.replace(' ', '_'))}",
        )
