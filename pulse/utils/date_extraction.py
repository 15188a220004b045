"""
Date extraction utilities for pulling publication dates out of provider
fields, URLs and free text.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)
_SHORT_MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec"

# Checked in order; the first pattern that yields a valid calendar date wins
ISO_DATE = re.compile(r'\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b')
US_DATE = re.compile(r'\b(\d{1,2})[-/](\d{1,2})[-/](\d{4})\b')
LONG_MONTH_DATE = re.compile(rf'\b({_MONTHS})\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b', re.IGNORECASE)
DAY_MONTH_DATE = re.compile(rf'\b(\d{{1,2}})\s+({_SHORT_MONTHS})[a-z]*\.?,?\s+(\d{{4}})\b', re.IGNORECASE)

FRESHNESS_OFFSETS: Tuple[Tuple[str, timedelta], ...] = (
    ("just now", timedelta(0)),
    ("breaking", timedelta(0)),
    ("today", timedelta(0)),
    ("yesterday", timedelta(days=1)),
    ("this week", timedelta(days=3)),
    ("recently", timedelta(days=3)),
)
DEFAULT_AGE = timedelta(days=7)


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _build(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def _month_number(name: str) -> int:
    return datetime.strptime(name[:3].title(), "%b").month


def parse_provider_date(value) -> Optional[datetime]:
    """
    Parse a provider-supplied date field (ISO string, RFC 822 string,
    datetime or time.struct_time). Returns an aware UTC datetime or None.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return _utc(value)

    # feedparser hands back time.struct_time for *_parsed fields
    if hasattr(value, "tm_year"):
        try:
            return datetime(*value[:6], tzinfo=timezone.utc)
        except (TypeError, ValueError):
            return None

    if not isinstance(value, str):
        return None

    try:
        return _utc(dateutil_parser.parse(value.strip()))
    except (ValueError, TypeError, OverflowError) as e:
        logger.debug(f"Unparseable provider date '{value}': {e}")
        return None


def extract_date_from_url(url: str) -> Optional[datetime]:
    """
    Extract publication date from URL patterns commonly used by news sites.

    Supports patterns like:
    - /2025/10/28/article-title
    - /2025-10-28/article-title
    - /20251028/article-title
    """
    if not url:
        return None

    match = re.search(r'/(\d{4})/(\d{1,2})/(\d{1,2})/', url)
    if match:
        dt = _build(*(int(g) for g in match.groups()))
        if dt:
            return dt

    match = re.search(r'[/-](\d{4})-(\d{1,2})-(\d{1,2})(?:[-/]|$)', url)
    if match:
        dt = _build(*(int(g) for g in match.groups()))
        if dt:
            return dt

    match = re.search(r'/(\d{4})(\d{2})(\d{2})/', url)
    if match:
        dt = _build(*(int(g) for g in match.groups()))
        if dt:
            return dt

    return None


def extract_date_from_content(content: str) -> Optional[datetime]:
    """
    Extract a date mentioned in free text.

    Looks for, in order:
    - ISO dates: "2024-01-05", "2024/01/05"
    - US dates: "01/05/2024", "1-5-2024"
    - Long month dates: "January 5, 2024", "published January 5th 2024"
    - Day-month dates: "5 Jan 2024"

    Returns:
        aware UTC datetime if a valid date is found, None otherwise
    """
    if not content:
        return None

    match = ISO_DATE.search(content)
    if match:
        year, month, day = (int(g) for g in match.groups())
        dt = _build(year, month, day)
        if dt:
            return dt

    match = US_DATE.search(content)
    if match:
        month, day, year = (int(g) for g in match.groups())
        dt = _build(year, month, day)
        if dt:
            return dt

    match = LONG_MONTH_DATE.search(content)
    if match:
        month_name, day, year = match.groups()
        dt = _build(int(year), _month_number(month_name), int(day))
        if dt:
            return dt

    match = DAY_MONTH_DATE.search(content)
    if match:
        day, month_name, year = match.groups()
        dt = _build(int(year), _month_number(month_name), int(day))
        if dt:
            return dt

    return None


def estimate_from_freshness(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Map words like "today" or "yesterday" to a recent timestamp."""
    if not text:
        return None
    now = now or datetime.now(timezone.utc)
    lowered = text.lower()
    for keyword, offset in FRESHNESS_OFFSETS:
        if keyword in lowered:
            return now - offset
    return None


def resolve_event_date(
    published_date: Optional[datetime],
    content: Optional[str],
    now: Optional[datetime] = None,
) -> Tuple[datetime, bool]:
    """
    Get the best available date for a timeline event.

    Priority:
    1. published_date from the provider
    2. Date mentioned in the content
    3. Freshness words ("today", "yesterday", ...)
    4. Fallback to a week ago

    Returns:
        (date, estimated) where estimated is True for steps 3 and 4
    """
    if published_date:
        return _utc(published_date), False

    content_date = extract_date_from_content(content or "")
    if content_date:
        return content_date, False

    now = now or datetime.now(timezone.utc)
    fresh = estimate_from_freshness(content or "", now)
    if fresh:
        return fresh, True

    return now - DEFAULT_AGE, True
