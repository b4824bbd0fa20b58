"""Contract every external scheduling system adapter implements."""

from abc import ABC, abstractmethod
from typing import List, Optional

from scheduling_service.models.appointments import (
    AppointmentResult,
    AvailabilityFilters,
    AvailableSlot,
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
)


class SchedulingAdapter(ABC):
    """Abstract adapter for a hospital or clinic scheduling system.

    Adapters report outcomes on two channels:

    * a business refusal by the external system is returned as an
      ``AppointmentResult`` with ``success=False`` and an ``error``;
    * a transport failure (network, timeout, 5xx) is raised as an exception.

    Only raised exceptions are retried and counted by the circuit breaker.
    """

    #: Identifier stored as ``adapter_type`` on appointments and sync logs
    name: str = "SchedulingAdapter"

    @abstractmethod
    async def create_appointment(self, data: CreateAppointmentRequest) -> AppointmentResult:
        """Book an appointment in the external system."""

    @abstractmethod
    async def update_appointment(
        self, external_id: str, data: UpdateAppointmentRequest
    ) -> AppointmentResult:
        """Apply a partial update to an existing external appointment."""

    @abstractmethod
    async def cancel_appointment(self, external_id: str, reason: Optional[str] = None) -> None:
        """Cancel an external appointment. Raises on failure."""

    @abstractmethod
    async def get_appointment(self, external_id: str) -> AppointmentResult:
        """Fetch an appointment by its external id."""

    @abstractmethod
    async def check_availability(self, filters: AvailabilityFilters) -> List[AvailableSlot]:
        """List bookable slots matching the filters."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the external system is reachable."""
