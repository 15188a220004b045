"""
Logging setup for Pulse.

Console output goes to stderr (stdout is reserved for the CLI's JSON), either
colored for people or one JSON object per line for log shippers. With a log
directory, a rotating pipeline log and a failures-only log are written too.
Nothing here runs at import time; the CLI or host calls ``setup_logging``.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

LEVEL_COLORS: Dict[int, str] = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
RESET = '\033[0m'

PIPELINE_LOG = "pulse.log"
FAILURES_LOG = "failures.log"
PLAIN_FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s'


def _component(logger_name: str) -> str:
    # "pulse.services.feed_ingestor" -> "feed_ingestor"
    return logger_name.rsplit('.', 1)[-1] if logger_name.startswith('pulse.') else logger_name


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; metrics passed as ``extra_data`` are nested under ``extra``."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'component': _component(record.name),
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}",
        }
        extra = getattr(record, 'extra_data', None)
        if extra:
            entry['extra'] = extra
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL component message`` colored by level."""

    def format(self, record):
        line = (
            f"{self.formatTime(record, '%H:%M:%S')} {record.levelname:<8} "
            f"{_component(record.name):<18} {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{RESET}" if color else line


def _file_handlers(log_dir: Optional[str], structured: bool) -> List[logging.Handler]:
    log_path = Path(log_dir) if log_dir else Path.cwd() / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    pipeline_log = logging.handlers.TimedRotatingFileHandler(
        log_path / PIPELINE_LOG, when='midnight', backupCount=7, encoding='utf-8'
    )
    pipeline_log.setLevel(logging.DEBUG)
    pipeline_log.setFormatter(StructuredFormatter() if structured else logging.Formatter(PLAIN_FILE_FORMAT))

    # Exhausted retries, failing endpoints and unexpected errors only
    failures_log = logging.FileHandler(log_path / FAILURES_LOG, encoding='utf-8')
    failures_log.setLevel(logging.ERROR)
    failures_log.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s'
    ))
    return [pipeline_log, failures_log]


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_file_logging: bool = False,
    enable_structured_logging: bool = False
) -> None:
    """
    Configure the root logger for a Pulse process.

    Args:
        log_level: console threshold (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: where file logs go; ``./logs`` when omitted
        enable_file_logging: also write pulse.log and failures.log
        enable_structured_logging: JSON lines instead of colored text
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(StructuredFormatter() if enable_structured_logging else ColoredConsoleFormatter())
    root.addHandler(console)

    if enable_file_logging:
        for handler in _file_handlers(log_dir, enable_structured_logging):
            root.addHandler(handler)

    configure_pipeline_loggers(log_level)


def configure_pipeline_loggers(log_level: str) -> None:
    """Per-component levels so endpoint chatter and third-party noise stay out of INFO runs."""
    debugging = log_level.upper() == "DEBUG"

    # Every failed attempt and backoff is logged by the failover loop
    logging.getLogger('pulse.services.failover').setLevel(logging.DEBUG if debugging else logging.INFO)
    logging.getLogger('pulse.services.instance_registry').setLevel(logging.DEBUG if debugging else logging.WARNING)

    # Skipped feed items are logged one by one
    logging.getLogger('pulse.services.feed_ingestor').setLevel(logging.INFO)

    for noisy in ('aiohttp', 'asyncio', 'charset_normalizer'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class PerformanceTracker:
    """Times a block and logs completion or failure; ``duration_ms`` is set on exit."""

    def __init__(self, operation: str, logger: Optional[logging.Logger] = None):
        self.operation = operation
        self.logger = logger or logging.getLogger(__name__)
        self.duration_ms = 0.0
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.debug(f"⏱️ Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._started is None:
            return
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        if exc_type:
            self.logger.error(f"💥 Failed: {self.operation} after {self.duration_ms:.1f}ms: {exc_val}")
        else:
            self.logger.info(f"✅ Completed: {self.operation} ({self.duration_ms:.1f}ms)")


def log_pipeline_metrics(
    logger: logging.Logger,
    stage: str,
    input_count: int,
    output_count: int,
    duration_ms: float,
    **extra_data
):
    """Log how many items a stage received and kept; the counts ride along as ``extra_data``."""
    dropped = input_count - output_count
    metrics = {
        'stage': stage,
        'received': input_count,
        'kept': output_count,
        'dropped': dropped,
        'reduction_rate': dropped / input_count if input_count else 0.0,
        'duration_ms': round(duration_ms, 1),
        **extra_data
    }
    logger.info(f"📊 {stage}: kept {output_count}/{input_count} ({duration_ms:.1f}ms)", extra={'extra_data': metrics})
