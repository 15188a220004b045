import json
import logging
import traceback
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional


class PulseError(Exception):
    """Base class for every failure raised by the retrieval core."""
    pass


class TransientNetworkError(PulseError):
    """Network-level failure that is worth retrying on another endpoint."""
    pass


class OperationTimeout(TransientNetworkError):
    """A single operation exceeded its deadline. Siblings are unaffected."""
    pass


class ParseError(PulseError):
    """A payload (feed XML, search JSON) could not be parsed."""
    pass


class RetryExhausted(PulseError):
    """All endpoints/proxies failed for one logical operation."""

    def __init__(self, operation: str, errors: Optional[List[Exception]] = None):
        self.operation = operation
        self.errors = list(errors or [])
        detail = "; ".join(f"{type(e).__name__}: {e}" for e in self.errors) or "no attempts made"
        super().__init__(f"{operation} failed after {len(self.errors)} attempts ({detail})")


class NoResults(PulseError):
    """An entire fan-out produced zero usable results."""
    pass


@dataclass
class ErrorContext:
    """Context for an error occurrence"""
    error_type: str
    error_message: str
    stack_trace: str
    timestamp: datetime
    service: str
    operation: str
    severity: str
    recovery_action: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ErrorSeverity(Enum):
    """Error severity levels"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ServiceType(Enum):
    """Service classifications"""
    IMPORTANT = "important"
    OPTIONAL = "optional"


class ErrorHandler:
    """
    Records failures from the retrieval core and logs them as structured JSON.

    Nothing in here raises: the pipeline is best-effort, so an error is always
    turned into a logged ErrorContext and an empty or degraded result upstream.
    """

    def __init__(self) -> None:
        self.service_criticality: Dict[str, ServiceType] = {
            'search': ServiceType.IMPORTANT,
            'trending': ServiceType.IMPORTANT,
            'timeline': ServiceType.IMPORTANT,
            'discovery': ServiceType.IMPORTANT,
            'feeds': ServiceType.OPTIONAL,
            'context': ServiceType.OPTIONAL,
            'wikipedia': ServiceType.OPTIONAL,
        }

        self.error_history: Deque[ErrorContext] = deque(maxlen=100)
        self.error_counts: Dict[str, int] = defaultdict(int)

        self.recovery_strategies: Dict[str, Callable[[Exception], str]] = {
            'RetryExhausted': self._suggest_endpoint_recovery,
            'TransientNetworkError': self._suggest_endpoint_recovery,
            'OperationTimeout': self._suggest_timeout_recovery,
            'ParseError': self._suggest_parse_recovery,
            'NoResults': self._suggest_no_results_recovery,
        }

        self.logger = logging.getLogger(__name__)

    def handle_error(
        self,
        error: Exception,
        service: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorContext:
        error_type = type(error).__name__
        error_message = str(error)
        stack_trace = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        timestamp = datetime.now(timezone.utc)

        severity = self.classify_severity(error, service)

        error_context = ErrorContext(
            error_type=error_type,
            error_message=error_message,
            stack_trace=stack_trace,
            timestamp=timestamp,
            service=service,
            operation=operation,
            severity=severity.value,
            recovery_action=self.get_recovery_suggestion(error),
            metadata=context or {},
        )

        self.error_history.append(error_context)
        self.error_counts[error_type] += 1

        log = self.logger.warning if severity in (ErrorSeverity.LOW, ErrorSeverity.INFO) else self.logger.error
        log(json.dumps({
            'event': 'error',
            'service': service,
            'operation': operation,
            'severity': severity.value,
            'error_type': error_type,
            'error_message': error_message,
            'timestamp': timestamp.isoformat(),
        }))

        return error_context

    def classify_severity(self, error: Exception, service: str) -> ErrorSeverity:
        service_type = self.service_criticality.get(service, ServiceType.OPTIONAL)

        # An empty fan-out is an expected, renderable state
        if isinstance(error, NoResults):
            return ErrorSeverity.INFO

        if isinstance(error, RetryExhausted):
            return ErrorSeverity.HIGH if service_type == ServiceType.IMPORTANT else ErrorSeverity.MEDIUM

        if isinstance(error, (TransientNetworkError, ParseError)):
            return ErrorSeverity.MEDIUM if service_type == ServiceType.IMPORTANT else ErrorSeverity.LOW

        # Anything outside the taxonomy is a bug, not a flaky endpoint
        if not isinstance(error, PulseError):
            return ErrorSeverity.HIGH

        return ErrorSeverity.MEDIUM if service_type == ServiceType.IMPORTANT else ErrorSeverity.LOW

    def get_recovery_suggestion(self, error: Exception) -> Optional[str]:
        for klass in type(error).__mro__:
            strategy = self.recovery_strategies.get(klass.__name__)
            if strategy:
                return strategy(error)
        return None

    def _suggest_endpoint_recovery(self, error: Exception) -> str:
        return (
            "Check that the configured search instances/proxies are reachable "
            "(PULSE_SEARCH_INSTANCES, PULSE_FETCH_PROXIES) and retry later."
        )

    def _suggest_timeout_recovery(self, error: Exception) -> str:
        return "Raise PULSE_SEARCH_TIMEOUT / PULSE_FEED_TIMEOUT or drop slow endpoints from the rotation."

    def _suggest_parse_recovery(self, error: Exception) -> str:
        return "The upstream payload format drifted; inspect the raw response for this source."

    def _suggest_no_results_recovery(self, error: Exception) -> str:
        return "Render the empty state; consider enabling PULSE_SYNTHETIC_FALLBACK for demos."

    def get_error_summary(self) -> Dict[str, Any]:
        """Summary of recorded errors for health reporting."""
        recent = list(self.error_history)[-10:]
        return {
            'total_errors': sum(self.error_counts.values()),
            'by_type': dict(self.error_counts),
            'recent': [
                {
                    'type': e.error_type,
                    'service': e.service,
                    'operation': e.operation,
                    'severity': e.severity,
                    'message': e.error_message,
                    'timestamp': e.timestamp.isoformat(),
                }
                for e in recent
            ],
        }
