import asyncio
import time

import pytest

from pulse.models.content import InstanceHealth
from pulse.services.failover import FailoverPolicy
from pulse.services.instance_registry import InstanceRegistry
from pulse.utils.error_monitoring import OperationTimeout, RetryExhausted, TransientNetworkError

URLS = ["https://one.test", "https://two.test", "https://three.test"]


@pytest.mark.asyncio
async def test_third_instance_serves_after_two_failures(no_sleep):
    registry = InstanceRegistry(URLS)
    policy = FailoverPolicy(max_attempts=3, backoff_seconds=1.0, sleep=no_sleep)
    tried = []

    async def operation(instance):
        tried.append(instance.url)
        if instance.url != "https://three.test":
            raise TransientNetworkError(f"{instance.url} down")
        return "served"

    assert await policy.run(operation, registry, "search") == "served"
    assert tried == URLS
    assert no_sleep.delays == [1.0, 2.0]

    one, two, three = registry.instances
    assert one.failure_count == 1 and two.failure_count == 1
    assert three.success_count == 1


@pytest.mark.asyncio
async def test_all_attempts_fail_raises_retry_exhausted(no_sleep):
    registry = InstanceRegistry(URLS)
    policy = FailoverPolicy(max_attempts=3, backoff_seconds=0.5, sleep=no_sleep)

    async def operation(instance):
        raise TransientNetworkError(f"{instance.url} down")

    with pytest.raises(RetryExhausted) as excinfo:
        await policy.run(operation, registry, "search 'x'")

    assert excinfo.value.operation == "search 'x'"
    assert len(excinfo.value.errors) == 3
    # no sleep after the final attempt
    assert no_sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_slow_attempt_times_out_and_rotates(no_sleep):
    registry = InstanceRegistry(URLS)
    policy = FailoverPolicy(max_attempts=3, attempt_timeout=0.05, sleep=no_sleep)

    async def operation(instance):
        if instance.url == "https://one.test":
            await asyncio.sleep(10)
        return instance.url

    assert await policy.run(operation, registry) == "https://two.test"
    assert registry.instances[0].failure_count == 1
    assert "OperationTimeout" in registry.instances[0].last_error


@pytest.mark.asyncio
async def test_never_responding_endpoints_bounded_by_attempt_timeouts(no_sleep):
    registry = InstanceRegistry(URLS)
    policy = FailoverPolicy(max_attempts=3, attempt_timeout=0.05, sleep=no_sleep)

    async def operation(instance):
        await asyncio.sleep(10)

    started = time.monotonic()
    with pytest.raises(RetryExhausted) as excinfo:
        await policy.run(operation, registry)
    elapsed = time.monotonic() - started

    assert all(isinstance(e, OperationTimeout) for e in excinfo.value.errors)
    assert elapsed < 3 * 0.05 + 1.0


@pytest.mark.asyncio
async def test_unexpected_errors_propagate_without_retry(no_sleep):
    registry = InstanceRegistry(URLS)
    policy = FailoverPolicy(sleep=no_sleep)
    calls = []

    async def operation(instance):
        calls.append(instance.url)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await policy.run(operation, registry)
    assert calls == ["https://one.test"]


@pytest.mark.asyncio
async def test_empty_registry_is_exhausted_immediately(no_sleep):
    policy = FailoverPolicy(sleep=no_sleep)

    async def operation(instance):
        return "never"

    with pytest.raises(RetryExhausted):
        await policy.run(operation, InstanceRegistry([]))


@pytest.mark.asyncio
async def test_failing_instances_marked_failing_over_many_calls(no_sleep):
    registry = InstanceRegistry(URLS[:1])
    policy = FailoverPolicy(max_attempts=5, sleep=no_sleep)

    async def operation(instance):
        raise TransientNetworkError("down")

    with pytest.raises(RetryExhausted):
        await policy.run(operation, registry)
    assert registry.instances[0].health == InstanceHealth.FAILING


def test_total_budget_covers_every_attempt_and_backoff():
    policy = FailoverPolicy(max_attempts=3, backoff_seconds=1.0, attempt_timeout=15.0)
    # 3 * 15s attempts plus 1s and 2s backoffs
    assert policy.total_budget() == pytest.approx(48.0)
    assert FailoverPolicy(max_attempts=1, attempt_timeout=2.0).total_budget() == pytest.approx(2.0)
