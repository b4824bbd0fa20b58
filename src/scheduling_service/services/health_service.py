"""Health and readiness reporting for the scheduling pipeline."""

from datetime import datetime, timezone
from typing import Any, Dict

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.resilience.circuit_breaker import CircuitBreaker, CircuitState
from scheduling_service.resilience.retry import RetryExecutor
from scheduling_service.utils.logging import get_logger

logger = get_logger("services.health")

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


class HealthService:
    """Aggregates adapter, circuit breaker and retry state."""

    def __init__(
        self,
        adapter: SchedulingAdapter,
        circuit_breaker: CircuitBreaker,
        retry_executor: RetryExecutor,
    ):
        self.adapter = adapter
        self.circuit_breaker = circuit_breaker
        self.retry_executor = retry_executor

    async def check_adapter(self) -> bool:
        try:
            return bool(await self.adapter.health_check())
        except Exception as e:
            logger.warning(f"Adapter health check failed: {e}")
            return False

    async def get_health(self) -> Dict[str, Any]:
        """Full health report.

        ``unhealthy`` when the adapter is down, ``degraded`` when the breaker
        is not CLOSED, ``healthy`` otherwise.
        """
        adapter_healthy = await self.check_adapter()
        # get_state() applies a pending OPEN -> HALF_OPEN transition first
        state = self.circuit_breaker.get_state()
        stats = self.circuit_breaker.get_stats()
        options = self.retry_executor.get_default_options()

        if not adapter_healthy:
            overall = UNHEALTHY
        elif state in (CircuitState.OPEN, CircuitState.HALF_OPEN):
            overall = DEGRADED
        else:
            overall = HEALTHY

        return {
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "adapter": {"name": self.adapter.name, "healthy": adapter_healthy},
            "circuitBreaker": stats.to_dict(),
            "retry": {
                "maxAttempts": options.max_attempts,
                "baseDelayMs": options.base_delay_ms,
                "maxDelayMs": options.max_delay_ms,
            },
        }

    def is_ready(self) -> bool:
        """Ready unless the circuit breaker is OPEN."""
        return not self.circuit_breaker.is_open()
