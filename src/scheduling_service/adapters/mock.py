"""In-memory adapter simulating an external scheduling system.

Used for local development, automated tests and demos. It simulates network
latency, occasional transport failures on create and a weekly grid of
availability slots.
"""

import asyncio
import random
import time
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.database.models import AppointmentStatus
from scheduling_service.models.appointments import (
    AppointmentResult,
    AvailabilityFilters,
    AvailableSlot,
    CreateAppointmentRequest,
    ExternalAppointment,
    UpdateAppointmentRequest,
)
from scheduling_service.utils.logging import get_logger

logger = get_logger("adapters.mock")

# Working hours for generated slots (end hour exclusive)
SLOT_START_HOUR = 8
SLOT_END_HOUR = 17
SLOT_MINUTES = (0, 30)
SLOT_DURATION_MINUTES = 30
SLOT_AVAILABILITY = 0.7
DEFAULT_SEARCH_DAYS = 7
DEFAULT_SPECIALTY = "Obstetrícia"


class MockTransportError(ConnectionError):
    """Simulated network failure."""


class MockSchedulingAdapter(SchedulingAdapter):
    """Adapter backed by a dict keyed by external id."""

    name = "MockSchedulingAdapter"

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency_ms: int = 100,
        latency_jitter_ms: int = 400,
        rng: Optional[random.Random] = None,
    ):
        self.failure_rate = failure_rate
        self.min_latency_ms = min_latency_ms
        self.latency_jitter_ms = latency_jitter_ms
        self._rng = rng or random.Random()
        self._appointments: Dict[str, ExternalAppointment] = {}

    async def create_appointment(self, data: CreateAppointmentRequest) -> AppointmentResult:
        logger.info(f"Creating appointment for patient {data.patient_id}")

        await self._simulate_delay()

        if self._rng.random() < self.failure_rate:
            raise MockTransportError("Mock: Simulated network error during appointment creation")

        external_id = f"MOCK-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        appointment = ExternalAppointment(
            id=str(uuid.uuid4()),
            external_id=external_id,
            patient_id=data.patient_id,
            professional_id=data.professional_id,
            scheduled_at=data.scheduled_at,
            status=AppointmentStatus.CONFIRMED,
            notes=data.notes,
            metadata=data.metadata,
        )
        self._appointments[external_id] = appointment

        logger.info(f"Appointment created successfully: {external_id}")
        return AppointmentResult(success=True, external_id=external_id, appointment=appointment)

    async def update_appointment(
        self, external_id: str, data: UpdateAppointmentRequest
    ) -> AppointmentResult:
        logger.info(f"Updating appointment {external_id}")

        await self._simulate_delay()

        appointment = self._appointments.get(external_id)
        if appointment is None:
            return AppointmentResult(success=False, error=f"Appointment not found: {external_id}")

        changes = {}
        if data.scheduled_at is not None:
            changes["scheduled_at"] = data.scheduled_at
        if data.professional_id is not None:
            changes["professional_id"] = data.professional_id
        if data.notes is not None:
            changes["notes"] = data.notes
        if data.metadata is not None:
            changes["metadata"] = {**(appointment.metadata or {}), **data.metadata}

        appointment = appointment.model_copy(update=changes)
        self._appointments[external_id] = appointment

        logger.info(f"Appointment updated successfully: {external_id}")
        return AppointmentResult(success=True, external_id=external_id, appointment=appointment)

    async def cancel_appointment(self, external_id: str, reason: Optional[str] = None) -> None:
        logger.info(f"Cancelling appointment {external_id}. Reason: {reason}")

        await self._simulate_delay()

        appointment = self._appointments.get(external_id)
        if appointment is None:
            raise LookupError(f"Appointment not found: {external_id}")

        notes = appointment.notes
        if reason:
            notes = f"{notes or ''}\nCancellation reason: {reason}"
        self._appointments[external_id] = appointment.model_copy(
            update={"status": AppointmentStatus.CANCELLED, "notes": notes}
        )

        logger.info(f"Appointment cancelled successfully: {external_id}")

    async def get_appointment(self, external_id: str) -> AppointmentResult:
        logger.info(f"Fetching appointment {external_id}")

        await self._simulate_delay()

        appointment = self._appointments.get(external_id)
        if appointment is None:
            return AppointmentResult(success=False, error=f"Appointment not found: {external_id}")

        return AppointmentResult(success=True, external_id=external_id, appointment=appointment)

    async def check_availability(self, filters: AvailabilityFilters) -> List[AvailableSlot]:
        logger.info(f"Checking availability from {filters.start_date}")

        await self._simulate_delay()

        start = filters.start_date
        end = filters.end_date or start + timedelta(days=DEFAULT_SEARCH_DAYS)

        total = 0
        slots: List[AvailableSlot] = []
        current = start
        while current <= end:
            # weekday() == 6 is Sunday
            if current.weekday() != 6:
                for hour in range(SLOT_START_HOUR, SLOT_END_HOUR):
                    for minute in SLOT_MINUTES:
                        total += 1
                        if self._rng.random() >= SLOT_AVAILABILITY:
                            continue
                        slots.append(
                            AvailableSlot(
                                date=current.isoformat(),
                                time=f"{hour:02d}:{minute:02d}",
                                available=True,
                                professional=filters.professional_id
                                or f"mock-professional-{self._rng.randint(1, 5)}",
                                location=f"Sala {self._rng.randint(101, 110)}",
                                metadata={
                                    "specialty": filters.specialty or DEFAULT_SPECIALTY,
                                    "duration": SLOT_DURATION_MINUTES,
                                },
                            )
                        )
            current += timedelta(days=1)

        logger.info(f"Found {len(slots)} available slots out of {total} total")
        return slots

    async def health_check(self) -> bool:
        await self._simulate_delay(base_ms=50)
        return True

    async def _simulate_delay(self, base_ms: Optional[int] = None) -> None:
        base = self.min_latency_ms if base_ms is None else base_ms
        delay_ms = base + self._rng.random() * self.latency_jitter_ms
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    def clear_appointments(self) -> None:
        """Drop every stored appointment."""
        logger.warning("Clearing all mock appointments")
        self._appointments.clear()

    @property
    def appointment_count(self) -> int:
        return len(self._appointments)
