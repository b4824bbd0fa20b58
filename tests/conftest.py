"""Pytest configuration and fixtures."""

import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.database.models import Base
from scheduling_service.models.appointments import AppointmentResult
from scheduling_service.resilience.circuit_breaker import CircuitBreaker
from scheduling_service.resilience.retry import RetryExecutor, RetryOptions
from scheduling_service.services.scheduling_service import SchedulingService

# Test database URL (in-memory SQLite for unit tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Manually advanced clock for circuit breaker tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIncomingMessage:
    """Minimal stand-in for ``aio_pika.abc.AbstractIncomingMessage``."""

    def __init__(
        self,
        body: Any,
        headers: Optional[Dict[str, Any]] = None,
        routing_key: str = "scheduling.create",
    ):
        if isinstance(body, bytes):
            self.body = body
        else:
            self.body = json.dumps(body).encode("utf-8")
        self.headers = headers or {}
        self.routing_key = routing_key
        self.ack = AsyncMock()
        self.nack = AsyncMock()
        self.reject = AsyncMock()


def make_adapter(name: str = "StubAdapter") -> MagicMock:
    """Adapter double whose async methods succeed by default."""
    adapter = MagicMock(spec=SchedulingAdapter)
    adapter.name = name
    adapter.create_appointment = AsyncMock(
        return_value=AppointmentResult(success=True, external_id="EXT-1")
    )
    adapter.update_appointment = AsyncMock(
        return_value=AppointmentResult(success=True, external_id="EXT-1")
    )
    adapter.cancel_appointment = AsyncMock(return_value=None)
    adapter.get_appointment = AsyncMock(
        return_value=AppointmentResult(success=True, external_id="EXT-1")
    )
    adapter.check_availability = AsyncMock(return_value=[])
    adapter.health_check = AsyncMock(return_value=True)
    return adapter


def make_service_factory(service: Any):
    """Service factory yielding a fixed service, as the listener expects."""

    @asynccontextmanager
    async def factory():
        yield service

    return factory


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session(engine):
    """Create test database session."""
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def circuit_breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=5, success_threshold=2, timeout=60.0, clock=clock)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def retry_executor(sleep) -> RetryExecutor:
    return RetryExecutor(RetryOptions(max_attempts=3), sleep=sleep)


@pytest.fixture
def adapter() -> MagicMock:
    return make_adapter()


@pytest.fixture
def publisher() -> MagicMock:
    publisher = MagicMock()
    publisher.publish_appointment_updated = AsyncMock()
    publisher.publish_appointment_cancelled = AsyncMock()
    return publisher


@pytest.fixture
def scheduling_service(session, adapter, circuit_breaker, retry_executor, publisher) -> SchedulingService:
    return SchedulingService(
        session=session,
        adapter=adapter,
        circuit_breaker=circuit_breaker,
        retry_executor=retry_executor,
        publisher=publisher,
    )


def published_payloads(exchange: MagicMock) -> List[Dict[str, Any]]:
    """Decode every message published on a mocked exchange."""
    return [json.loads(c.args[0].body) for c in exchange.publish.call_args_list]


async def count_rows(session: AsyncSession, model: Any, **filters: Any) -> int:
    """Count rows of ``model`` matching exact column values (``None`` matches NULL)."""
    query = select(func.count()).select_from(model)
    for field, value in filters.items():
        column = getattr(model, field)
        query = query.where(column.is_(None) if value is None else column == value)
    return (await session.execute(query)).scalar_one()
