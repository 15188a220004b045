"""
Runtime configuration for the retrieval pipeline.

Static tables (instances, feeds, keyword tables, trending candidates...) come
from a YAML file shipped with the package; scalar knobs come from environment
variables so deployments can tune them without editing the file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from pulse.models.content import FeedSource, TrendingCandidate

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "sources.yaml"


@dataclass
class ProxyConfig:
    """A fetch proxy and the wire format it speaks"""
    url: str
    kind: str = "raw"


@dataclass
class PulseConfig:
    """Pipeline configuration"""
    search_instances: List[str] = field(default_factory=list)
    search_engines: str = "google,bing,duckduckgo"
    fetch_proxies: List[ProxyConfig] = field(default_factory=list)
    feeds: Dict[str, List[FeedSource]] = field(default_factory=dict)
    category_keywords: Dict[str, List[str]] = field(default_factory=dict)
    trending_candidates: List[TrendingCandidate] = field(default_factory=list)
    fact_check_sites: List[str] = field(default_factory=list)
    source_credibility: Dict[str, int] = field(default_factory=dict)
    verified_sources: List[str] = field(default_factory=list)
    news_domains: List[str] = field(default_factory=list)
    breaking_keywords: List[str] = field(default_factory=list)

    # Deadlines (seconds)
    search_timeout: float = 15.0
    feed_timeout: float = 10.0
    context_timeout: float = 5.0

    # Retry
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    # Scoring
    dedup_threshold: float = 0.8
    position_penalty: float = 0.02
    timeline_epsilon: float = 0.1

    feed_cache_ttl: float = 1800.0
    synthetic_fallback: bool = False

    log_level: str = "INFO"
    log_dir: Optional[str] = None


class ConfigError(ValueError):
    """Configuration file or environment value is unusable."""
    pass


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML at {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must hold a mapping, got {type(data).__name__}")
    logger.info(f"Loaded source config from {path}")
    return data


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(',') if part.strip()]


def _parse_proxy(entry: Any) -> ProxyConfig:
    if isinstance(entry, dict):
        return ProxyConfig(url=entry["url"], kind=entry.get("kind", "raw"))
    # Env form: "allorigins|https://api.allorigins.win/get?url=" or a bare URL
    text = str(entry)
    if '|' in text:
        kind, url = text.split('|', 1)
        return ProxyConfig(url=url.strip(), kind=kind.strip().lower())
    return ProxyConfig(url=text.strip())


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def load_config(path: Optional[str] = None) -> PulseConfig:
    """
    Build a PulseConfig from the YAML source tables and environment overrides.

    Args:
        path: YAML file to read; defaults to $PULSE_CONFIG_PATH, then the
            packaged sources.yaml

    Raises:
        ConfigError: if the file is missing/invalid or a numeric override
            cannot be parsed
    """
    config_path = Path(path or os.getenv('PULSE_CONFIG_PATH') or DEFAULT_CONFIG_PATH)
    data = _read_yaml(config_path)

    feeds = {
        category: [FeedSource(url=url, category=category) for url in urls]
        for category, urls in data.get("feeds", {}).items()
    }
    candidates = [
        TrendingCandidate(query=c["query"], category=c["category"], weight=float(c["weight"]))
        for c in data.get("trending_candidates", [])
    ]

    instances = data.get("search_instances", [])
    if os.getenv('PULSE_SEARCH_INSTANCES'):
        instances = _split_csv(os.environ['PULSE_SEARCH_INSTANCES'])

    proxies = [_parse_proxy(p) for p in data.get("fetch_proxies", [])]
    if os.getenv('PULSE_FETCH_PROXIES'):
        proxies = [_parse_proxy(p) for p in _split_csv(os.environ['PULSE_FETCH_PROXIES'])]

    config = PulseConfig(
        search_instances=[url.rstrip('/') for url in instances],
        search_engines=data.get("search_engines", "google,bing,duckduckgo"),
        fetch_proxies=proxies,
        feeds=feeds,
        category_keywords=dict(data.get("category_keywords", {})),
        trending_candidates=candidates,
        fact_check_sites=list(data.get("fact_check_sites", [])),
        source_credibility={k: int(v) for k, v in data.get("source_credibility", {}).items()},
        verified_sources=list(data.get("verified_sources", [])),
        news_domains=list(data.get("news_domains", [])),
        breaking_keywords=list(data.get("breaking_keywords", [])),
        search_timeout=_env_float('PULSE_SEARCH_TIMEOUT', 15.0),
        feed_timeout=_env_float('PULSE_FEED_TIMEOUT', 10.0),
        context_timeout=_env_float('PULSE_CONTEXT_TIMEOUT', 5.0),
        max_attempts=_env_int('PULSE_MAX_ATTEMPTS', 3),
        backoff_seconds=_env_float('PULSE_BACKOFF_SECONDS', 1.0),
        dedup_threshold=_env_float('PULSE_DEDUP_THRESHOLD', 0.8),
        position_penalty=_env_float('PULSE_POSITION_PENALTY', 0.02),
        timeline_epsilon=_env_float('PULSE_TIMELINE_EPSILON', 0.1),
        feed_cache_ttl=_env_float('PULSE_FEED_CACHE_TTL', 1800.0),
        synthetic_fallback=_env_bool('PULSE_SYNTHETIC_FALLBACK', False),
        log_level=os.getenv('PULSE_LOG_LEVEL', 'INFO'),
        log_dir=os.getenv('PULSE_LOG_DIR') or None,
    )

    if config.max_attempts < 1:
        raise ConfigError("PULSE_MAX_ATTEMPTS must be at least 1")
    if not config.search_instances:
        logger.warning("⚠️ No search instances configured; live search will always fail")

    return config
