"""Adapter selection from configuration."""

from typing import Callable, Dict, Optional

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.adapters.mock import MockSchedulingAdapter
from scheduling_service.config import AdapterSettings, AdapterType, get_settings
from scheduling_service.utils.logging import get_logger

logger = get_logger("adapters")


def _create_mock_adapter(settings: AdapterSettings) -> SchedulingAdapter:
    return MockSchedulingAdapter(
        failure_rate=settings.mock_failure_rate,
        min_latency_ms=settings.mock_min_latency_ms,
        latency_jitter_ms=settings.mock_latency_jitter_ms,
    )


ADAPTER_FACTORIES: Dict[AdapterType, Callable[[AdapterSettings], SchedulingAdapter]] = {
    AdapterType.MOCK: _create_mock_adapter,
}


def create_adapter(settings: Optional[AdapterSettings] = None) -> SchedulingAdapter:
    """Build the adapter selected by ``ADAPTER_TYPE``."""
    settings = settings or get_settings().adapter
    try:
        factory = ADAPTER_FACTORIES[settings.type]
    except KeyError:
        raise ValueError(f"No adapter registered for type: {settings.type}") from None

    adapter = factory(settings)
    logger.info(f"Using scheduling adapter: {adapter.name}")
    return adapter
