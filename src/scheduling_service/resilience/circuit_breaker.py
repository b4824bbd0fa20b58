"""Circuit breaker guarding calls to the external scheduling system.

States:
    - CLOSED: normal operation, calls pass through
    - OPEN: too many failures, calls are rejected without running
    - HALF_OPEN: probing whether the external system recovered

Transitions:
    - CLOSED -> OPEN after ``failure_threshold`` consecutive failures
    - OPEN -> HALF_OPEN once ``timeout`` seconds passed since the last failure
    - HALF_OPEN -> CLOSED after ``success_threshold`` successes
    - HALF_OPEN -> OPEN on any failure
"""

import asyncio
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from scheduling_service.utils.errors import CircuitOpenError
from scheduling_service.utils.logging import get_logger

logger = get_logger("resilience.circuit_breaker")

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerStats:
    """Snapshot of the breaker counters. Times are epoch seconds."""

    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    last_failure_time: Optional[float] = None
    last_state_change: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "lastFailureTime": _isoformat(self.last_failure_time),
            "lastStateChange": _isoformat(self.last_state_change),
        }


def _isoformat(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class CircuitBreaker:
    """Process-wide circuit breaker.

    Example:
        >>> breaker = CircuitBreaker()
        >>> result = await breaker.execute(lambda: adapter.health_check())
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            failure_threshold: Consecutive failures before opening
            success_threshold: Successes in HALF_OPEN needed to close
            timeout: Seconds after the last failure before a probe is allowed
            clock: Source of the current time in seconds
        """
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self._clock = clock
        self._stats = CircuitBreakerStats()
        self._lock = asyncio.Lock()

        logger.info("Circuit breaker initialized in CLOSED state")

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open; the operation is not invoked.
            Exception: Whatever the operation raised, after it was recorded.
        """
        async with self._lock:
            self._check_state()
            if self._stats.state == CircuitState.OPEN:
                raise CircuitOpenError(retry_after=self._time_until_probe())

        # The lock is not held while the operation runs
        try:
            result = await operation()
        except Exception:
            async with self._lock:
                self._on_failure()
            raise

        async with self._lock:
            self._on_success()
        return result

    def get_stats(self) -> CircuitBreakerStats:
        """Return a copy of the current counters."""
        return replace(self._stats)

    def get_state(self) -> CircuitState:
        """Return the current state, applying a pending OPEN -> HALF_OPEN transition."""
        self._check_state()
        return self._stats.state

    def is_open(self) -> bool:
        return self.get_state() == CircuitState.OPEN

    def reset(self) -> None:
        """Force the breaker back to CLOSED and clear its counters."""
        logger.warning("Circuit breaker manually reset")
        self._set_state(CircuitState.CLOSED)
        self._stats.successes = 0
        self._stats.last_failure_time = None

    def _check_state(self) -> None:
        if self._stats.state != CircuitState.OPEN or self._stats.last_failure_time is None:
            return

        elapsed = self._clock() - self._stats.last_failure_time
        if elapsed >= self.timeout:
            logger.info(f"Transitioning from OPEN to HALF_OPEN after {elapsed:.1f}s")
            self._set_state(CircuitState.HALF_OPEN)
            self._stats.successes = 0

    def _on_success(self) -> None:
        self._stats.failures = 0

        if self._stats.state == CircuitState.HALF_OPEN:
            self._stats.successes += 1
            logger.debug(
                f"Success in HALF_OPEN ({self._stats.successes}/{self.success_threshold})"
            )
            if self._stats.successes >= self.success_threshold:
                self._set_state(CircuitState.CLOSED)
                self._stats.successes = 0

    def _on_failure(self) -> None:
        self._stats.failures += 1
        self._stats.last_failure_time = self._clock()

        logger.warning(
            f"Failure recorded ({self._stats.failures}/{self.failure_threshold}) "
            f"in {self._stats.state.value} state"
        )

        if self._stats.state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
            self._stats.successes = 0
        elif (
            self._stats.state == CircuitState.CLOSED
            and self._stats.failures >= self.failure_threshold
        ):
            logger.error(
                f"Failure threshold reached ({self._stats.failures}/{self.failure_threshold}), "
                "opening circuit"
            )
            self._set_state(CircuitState.OPEN)

    def _set_state(self, new_state: CircuitState) -> None:
        old_state = self._stats.state
        self._stats.state = new_state
        self._stats.last_state_change = self._clock()
        self._stats.failures = 0
        logger.info(f"Circuit breaker state changed: {old_state.value} -> {new_state.value}")

    def _time_until_probe(self) -> Optional[float]:
        if self._stats.last_failure_time is None:
            return None
        return max(0.0, self.timeout - (self._clock() - self._stats.last_failure_time))
