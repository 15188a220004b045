import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, TypeVar
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRACKING_PARAMS = {"fbclid", "gclid", "mc_cid", "mc_eid", "ref", "ref_src", "igshid", "cmpid"}


class DeduplicationError(Exception):
    pass


def canonical_url(url: Optional[str]) -> Optional[str]:
    """
    Comparable form of a URL: scheme/host lower-cased, ``www.`` stripped,
    tracking parameters and fragment dropped, trailing slash trimmed.
    """
    if not url or not url.strip():
        return None
    parsed = urlparse(url.strip())
    host = parsed.netloc.lower()
    if host.startswith('www.'):
        host = host[4:]
    query = urlencode([
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if not k.lower().startswith('utm_') and k.lower() not in TRACKING_PARAMS
    ])
    path = parsed.path.rstrip('/')
    return urlunparse((parsed.scheme.lower(), host, path, '', query, ''))


class Deduplicator:
    """
    Title-similarity and canonical-URL deduplication.

    First occurrence wins and input order is preserved. Each candidate is
    compared against every accepted item, so a call is O(n^2).
    """

    def __init__(self, threshold: float = 0.8):
        if not 0.0 < threshold <= 1.0:
            raise DeduplicationError(f"threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold
        self.stats: Dict[str, int] = {
            "total_processed": 0,
            "title_filtered": 0,
            "url_filtered": 0,
        }
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def normalize_title(title: Optional[str]) -> str:
        text = re.sub(r"[^\w\s]", "", (title or "").lower())
        return " ".join(text.split())

    def title_similarity(self, a: Optional[str], b: Optional[str]) -> float:
        """|A ∩ B| / max(|A|, |B|) over normalized word sets."""
        words_a = set(self.normalize_title(a).split())
        words_b = set(self.normalize_title(b).split())
        if not words_a and not words_b:
            return 1.0
        if not words_a or not words_b:
            return 0.0
        return len(words_a & words_b) / max(len(words_a), len(words_b))

    def dedupe(
        self,
        items: Iterable[T],
        title_of: Callable[[T], str] = lambda item: getattr(item, "title", ""),
        url_of: Callable[[T], Optional[str]] = lambda item: getattr(item, "url", None),
    ) -> List[T]:
        """
        Drop items whose title is at least ``threshold`` similar to an
        already accepted title, or whose canonical URL was already accepted.
        """
        self.reset_statistics()
        accepted: List[T] = []
        accepted_titles: List[str] = []
        seen_urls: Set[str] = set()

        for item in items:
            self.stats["total_processed"] += 1

            url_key = canonical_url(url_of(item))
            if url_key and url_key in seen_urls:
                self.stats["url_filtered"] += 1
                continue

            title = title_of(item)
            if any(self.title_similarity(title, kept) >= self.threshold for kept in accepted_titles):
                self.stats["title_filtered"] += 1
                self.logger.debug(f"Filtered near-duplicate title: {(title or '')[:50]}")
                continue

            accepted.append(item)
            accepted_titles.append(title)
            if url_key:
                seen_urls.add(url_key)

        if self.stats["total_processed"]:
            self.logger.debug(
                f"🧹 Dedup kept {len(accepted)}/{self.stats['total_processed']} "
                f"(title: {self.stats['title_filtered']}, url: {self.stats['url_filtered']})"
            )
        return accepted

    def get_statistics(self) -> Dict[str, Any]:
        return dict(self.stats)

    def reset_statistics(self) -> None:
        for k in list(self.stats.keys()):
            self.stats[k] = 0
