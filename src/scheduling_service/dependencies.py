"""FastAPI dependencies.

The adapter, circuit breaker, retry executor and RabbitMQ gateway are created
once in the application lifespan and stored on ``app.state``.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.database.session import get_session
from scheduling_service.messaging.rabbitmq import RabbitMQService
from scheduling_service.resilience.circuit_breaker import CircuitBreaker
from scheduling_service.resilience.retry import RetryExecutor
from scheduling_service.services.health_service import HealthService
from scheduling_service.services.scheduling_service import SchedulingService


def get_adapter(request: Request) -> SchedulingAdapter:
    return request.app.state.adapter


def get_circuit_breaker(request: Request) -> CircuitBreaker:
    return request.app.state.circuit_breaker


def get_retry_executor(request: Request) -> RetryExecutor:
    return request.app.state.retry_executor


def get_rabbitmq(request: Request) -> Optional[RabbitMQService]:
    """RabbitMQ gateway, or None when the broker is disabled or unreachable."""
    return getattr(request.app.state, "rabbitmq", None)


def get_scheduling_service(
    session: AsyncSession = Depends(get_session),
    adapter: SchedulingAdapter = Depends(get_adapter),
    circuit_breaker: CircuitBreaker = Depends(get_circuit_breaker),
    retry_executor: RetryExecutor = Depends(get_retry_executor),
    rabbitmq: Optional[RabbitMQService] = Depends(get_rabbitmq),
) -> SchedulingService:
    return SchedulingService(
        session=session,
        adapter=adapter,
        circuit_breaker=circuit_breaker,
        retry_executor=retry_executor,
        publisher=rabbitmq,
    )


def get_health_service(
    adapter: SchedulingAdapter = Depends(get_adapter),
    circuit_breaker: CircuitBreaker = Depends(get_circuit_breaker),
    retry_executor: RetryExecutor = Depends(get_retry_executor),
) -> HealthService:
    return HealthService(adapter, circuit_breaker, retry_executor)


__all__ = [
    "get_adapter",
    "get_circuit_breaker",
    "get_health_service",
    "get_rabbitmq",
    "get_retry_executor",
    "get_scheduling_service",
    "get_session",
]
