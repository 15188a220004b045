"""
Retry with rotation: one logical operation, several endpoints, linear backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from pulse.models.content import SearchInstance
from pulse.services.instance_registry import InstanceRegistry
from pulse.utils.error_monitoring import OperationTimeout, PulseError, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class FailoverPolicy:
    """
    Runs an async operation against successive endpoints until one succeeds.

    Each attempt is bounded by ``attempt_timeout``. After failed attempt ``n``
    (1-based) the policy sleeps ``backoff_seconds * n`` unless ``n`` was the
    last attempt. Only errors in ``retry_on`` trigger another attempt; anything
    else propagates immediately.
    """
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    attempt_timeout: float = 15.0
    retry_on: Tuple[Type[BaseException], ...] = (PulseError, OSError)
    sleep: SleepFn = field(default=asyncio.sleep, repr=False)

    def backoff_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt

    def total_budget(self) -> float:
        """Worst-case wall time of one ``run``: every attempt times out, every backoff is slept."""
        backoffs = sum(self.backoff_for(n) for n in range(1, self.max_attempts))
        return self.max_attempts * self.attempt_timeout + backoffs


    async def run_attempts(
        self,
        attempt_fn: Callable[[int], Awaitable[T]],
        operation_name: str,
        on_failure: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        """
        Lower-level loop: ``attempt_fn`` receives the 1-based attempt number
        and decides which endpoint to use for it.

        Raises:
            RetryExhausted: every attempt failed with a retryable error
        """
        errors: List[BaseException] = []

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(attempt_fn(attempt), timeout=self.attempt_timeout)
            except asyncio.TimeoutError:
                error: BaseException = OperationTimeout(
                    f"{operation_name} attempt {attempt} exceeded {self.attempt_timeout}s"
                )
            except self.retry_on as e:
                error = e

            errors.append(error)
            if on_failure:
                on_failure(attempt, error)
            logger.debug(f"🔁 {operation_name} attempt {attempt}/{self.max_attempts} failed: {error}")

            if attempt < self.max_attempts:
                await self.sleep(self.backoff_for(attempt))

        logger.warning(f"❌ {operation_name} failed after {self.max_attempts} attempts")
        raise RetryExhausted(operation_name, errors)

    async def run(
        self,
        operation: Callable[[SearchInstance], Awaitable[T]],
        registry: InstanceRegistry,
        operation_name: str = "operation",
    ) -> T:
        """Try ``operation(instance)`` on rotated registry instances."""
        if len(registry) == 0:
            raise RetryExhausted(operation_name, [])

        used: List[SearchInstance] = []

        async def attempt_fn(attempt: int) -> T:
            instance = registry.next_instance()
            used.append(instance)
            result = await operation(instance)
            registry.record_success(instance)
            return result

        def on_failure(attempt: int, error: BaseException) -> None:
            if len(used) >= attempt:
                registry.record_failure(used[attempt - 1], error)

        return await self.run_attempts(attempt_fn, operation_name, on_failure)
