"""Fault isolation: circuit breaker and retry."""

from scheduling_service.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerStats,
    CircuitState,
)
from scheduling_service.resilience.retry import RetryExecutor, RetryOptions, calculate_delay

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitState",
    "RetryExecutor",
    "RetryOptions",
    "calculate_delay",
]
