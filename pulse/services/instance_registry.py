"""
Registry of redundant backend endpoints (search instances or fetch proxies)
with round-robin rotation and per-endpoint health tracking.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pulse.models.content import InstanceHealth, SearchInstance

logger = logging.getLogger(__name__)

FAILING_AFTER = 5
DEGRADED_AFTER = 2
DEGRADED_SUCCESS_RATE = 0.7


class RotatorState:
    """Process-wide rotation pointer; every read-and-advance happens under a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = 0

    def advance(self, modulo: int) -> int:
        if modulo <= 0:
            raise ValueError("cannot rotate over an empty set")
        with self._lock:
            index = self._counter % modulo
            self._counter += 1
            return index

    @property
    def position(self) -> int:
        with self._lock:
            return self._counter


def classify_health(instance: SearchInstance) -> InstanceHealth:
    """Determine current endpoint status from its counters"""
    if instance.consecutive_failures >= FAILING_AFTER:
        return InstanceHealth.FAILING
    elif instance.consecutive_failures >= DEGRADED_AFTER or instance.success_rate() < DEGRADED_SUCCESS_RATE:
        return InstanceHealth.DEGRADED
    return InstanceHealth.HEALTHY


class InstanceRegistry:
    """
    Owns the endpoint list and its rotation state.

    Rotation is strictly round-robin: outcomes update health for reporting
    but never change which endpoint is handed out next.
    """

    def __init__(self, urls: Iterable[str], name: str = "search"):
        self.name = name
        self._instances: List[SearchInstance] = [SearchInstance(url=u) for u in urls]
        self._rotator = RotatorState()
        self._lock = threading.Lock()
        logger.info(f"Initialized {name} registry with {len(self._instances)} endpoints")

    def __len__(self) -> int:
        return len(self._instances)

    @property
    def instances(self) -> List[SearchInstance]:
        return list(self._instances)

    def next_instance(self) -> SearchInstance:
        if not self._instances:
            raise LookupError(f"{self.name} registry has no endpoints configured")
        instance = self._instances[self._rotator.advance(len(self._instances))]
        with self._lock:
            instance.last_used = datetime.now(timezone.utc)
        return instance

    def record_success(self, instance: SearchInstance) -> None:
        with self._lock:
            instance.success_count += 1
            instance.consecutive_failures = 0
            instance.last_error = None
            previous = instance.health
            instance.health = classify_health(instance)
        if previous != instance.health:
            logger.info(f"🔄 {self.name} endpoint {instance.url}: {previous.value} → {instance.health.value}")

    def record_failure(self, instance: SearchInstance, error: Optional[BaseException] = None) -> None:
        with self._lock:
            instance.failure_count += 1
            instance.consecutive_failures += 1
            instance.last_error = f"{type(error).__name__}: {error}" if error else None
            previous = instance.health
            instance.health = classify_health(instance)
        if previous != instance.health:
            logger.warning(f"⚠️ {self.name} endpoint {instance.url}: {previous.value} → {instance.health.value}")

    def health_report(self) -> Dict[str, Any]:
        with self._lock:
            endpoints = [i.to_dict() for i in self._instances]
        counts = {h.value: 0 for h in InstanceHealth}
        for e in endpoints:
            counts[e["health"]] += 1
        return {
            "registry": self.name,
            "total": len(endpoints),
            "by_health": counts,
            "endpoints": endpoints,
        }
