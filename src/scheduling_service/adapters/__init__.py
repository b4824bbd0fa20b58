"""External scheduling system adapters."""

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.adapters.mock import MockSchedulingAdapter
from scheduling_service.adapters.registry import create_adapter

__all__ = ["MockSchedulingAdapter", "SchedulingAdapter", "create_adapter"]
