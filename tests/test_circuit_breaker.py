"""Tests for the circuit breaker state machine."""

from unittest.mock import AsyncMock

import pytest

from scheduling_service.resilience.circuit_breaker import CircuitBreaker, CircuitState
from scheduling_service.utils.errors import CircuitOpenError


class Boom(Exception):
    pass


async def fail_times(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(Boom):
            await breaker.execute(AsyncMock(side_effect=Boom("down")))


@pytest.mark.asyncio
async def test_starts_closed(circuit_breaker):
    stats = circuit_breaker.get_stats()
    assert stats.state == CircuitState.CLOSED
    assert stats.failures == 0
    assert stats.successes == 0
    assert stats.last_failure_time is None


@pytest.mark.asyncio
async def test_execute_returns_result(circuit_breaker):
    operation = AsyncMock(return_value="ok")
    assert await circuit_breaker.execute(operation) == "ok"
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_execute_reraises_operation_error(circuit_breaker):
    with pytest.raises(Boom, match="down"):
        await circuit_breaker.execute(AsyncMock(side_effect=Boom("down")))
    assert circuit_breaker.get_stats().failures == 1


@pytest.mark.asyncio
async def test_opens_after_failure_threshold(circuit_breaker):
    await fail_times(circuit_breaker, 4)
    assert circuit_breaker.get_state() == CircuitState.CLOSED

    await fail_times(circuit_breaker, 1)
    assert circuit_breaker.get_state() == CircuitState.OPEN
    assert circuit_breaker.is_open()


@pytest.mark.asyncio
async def test_open_circuit_does_not_invoke_operation(circuit_breaker):
    await fail_times(circuit_breaker, 5)

    operation = AsyncMock(return_value="ok")
    with pytest.raises(CircuitOpenError) as exc_info:
        await circuit_breaker.execute(operation)

    operation.assert_not_awaited()
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_success_resets_failure_count(circuit_breaker):
    await fail_times(circuit_breaker, 4)
    await circuit_breaker.execute(AsyncMock(return_value="ok"))
    assert circuit_breaker.get_stats().failures == 0

    await fail_times(circuit_breaker, 4)
    assert circuit_breaker.get_state() == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_half_open_after_timeout(circuit_breaker, clock):
    await fail_times(circuit_breaker, 5)

    clock.advance(59.9)
    assert circuit_breaker.get_state() == CircuitState.OPEN

    clock.advance(0.1)
    assert circuit_breaker.get_state() == CircuitState.HALF_OPEN


@pytest.mark.asyncio
async def test_half_open_closes_after_success_threshold(circuit_breaker, clock):
    await fail_times(circuit_breaker, 5)
    clock.advance(60)

    operation = AsyncMock(return_value="ok")
    await circuit_breaker.execute(operation)
    assert circuit_breaker.get_state() == CircuitState.HALF_OPEN
    assert circuit_breaker.get_stats().successes == 1

    await circuit_breaker.execute(operation)
    assert circuit_breaker.get_state() == CircuitState.CLOSED
    assert operation.await_count == 2


@pytest.mark.asyncio
async def test_half_open_failure_reopens(circuit_breaker, clock):
    await fail_times(circuit_breaker, 5)
    clock.advance(60)

    await fail_times(circuit_breaker, 1)
    assert circuit_breaker.get_state() == CircuitState.OPEN

    # The timeout restarts from the probe failure
    clock.advance(30)
    with pytest.raises(CircuitOpenError):
        await circuit_breaker.execute(AsyncMock(return_value="ok"))


@pytest.mark.asyncio
async def test_transition_resets_failures_and_records_change(circuit_breaker, clock):
    await fail_times(circuit_breaker, 5)

    stats = circuit_breaker.get_stats()
    assert stats.state == CircuitState.OPEN
    assert stats.failures == 0
    assert stats.last_state_change == clock.now
    assert stats.last_failure_time == clock.now


@pytest.mark.asyncio
async def test_get_stats_returns_copy(circuit_breaker):
    stats = circuit_breaker.get_stats()
    stats.failures = 42
    assert circuit_breaker.get_stats().failures == 0


@pytest.mark.asyncio
async def test_reset(circuit_breaker):
    await fail_times(circuit_breaker, 5)
    circuit_breaker.reset()

    stats = circuit_breaker.get_stats()
    assert stats.state == CircuitState.CLOSED
    assert stats.failures == 0
    assert stats.last_failure_time is None


def test_stats_to_dict(circuit_breaker):
    data = circuit_breaker.get_stats().to_dict()
    assert data == {
        "state": "CLOSED",
        "failures": 0,
        "successes": 0,
        "lastFailureTime": None,
        "lastStateChange": None,
    }


@pytest.mark.asyncio
async def test_custom_thresholds(clock):
    breaker = CircuitBreaker(failure_threshold=2, success_threshold=1, timeout=5, clock=clock)
    await fail_times(breaker, 2)
    assert breaker.is_open()

    clock.advance(5)
    await breaker.execute(AsyncMock(return_value=None))
    assert breaker.get_state() == CircuitState.CLOSED
