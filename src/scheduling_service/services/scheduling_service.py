"""Orchestration of appointment bookings against the external scheduling system.

Every write goes through the same pipeline:

1. call the adapter through the circuit breaker and the retry executor
2. persist the local appointment
3. append one sync log entry (success or failure)
4. publish an event for the Core service where applicable
"""

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_service.adapters.base import SchedulingAdapter
from scheduling_service.database.models import (
    Appointment,
    AppointmentStatus,
    AppointmentSyncLog,
    SyncOperation,
)
from scheduling_service.models.appointments import (
    AppointmentResult,
    AvailabilityFilters,
    AvailableSlot,
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
)
from scheduling_service.repositories.appointments_repository import AppointmentsRepository
from scheduling_service.repositories.sync_log_repository import SyncLogRepository
from scheduling_service.resilience.circuit_breaker import CircuitBreaker
from scheduling_service.resilience.retry import RetryExecutor
from scheduling_service.utils.errors import (
    BusinessRejectionError,
    MissingExternalIdError,
    NotFoundError,
)
from scheduling_service.utils.logging import get_logger, log_error, log_sync_attempt

if TYPE_CHECKING:
    from scheduling_service.messaging.rabbitmq import RabbitMQService

logger = get_logger("services.scheduling")

T = TypeVar("T")


def isoformat(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


class SchedulingService:
    """Business logic for booking, updating and cancelling appointments."""

    def __init__(
        self,
        session: AsyncSession,
        adapter: SchedulingAdapter,
        circuit_breaker: CircuitBreaker,
        retry_executor: RetryExecutor,
        publisher: Optional["RabbitMQService"] = None,
    ):
        self.session = session
        self.adapter = adapter
        self.circuit_breaker = circuit_breaker
        self.retry_executor = retry_executor
        self.publisher = publisher
        self.appointments = AppointmentsRepository(session)
        self.sync_logs = SyncLogRepository(session)

    async def _call_adapter(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await self.circuit_breaker.execute(lambda: self.retry_executor.execute(operation))

    def _ensure_success(self, result: AppointmentResult, require_external_id: bool = False) -> None:
        if not result.success or (require_external_id and not result.external_id):
            raise BusinessRejectionError(
                result.error or "External system rejected the operation",
                adapter=self.adapter.name,
            )

    async def _record_sync(
        self,
        operation: SyncOperation,
        request: Dict[str, Any],
        appointment_id: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> AppointmentSyncLog:
        log_sync_attempt(
            operation.value,
            self.adapter.name,
            success=error is None,
            appointment_id=appointment_id,
            error=error,
        )
        return await self.sync_logs.create(
            appointment_id=appointment_id,
            adapter_type=self.adapter.name,
            operation=operation,
            request=request,
            response=response,
            success=error is None,
            error=str(error) if error is not None else None,
        )

    async def _record_failure(
        self,
        operation: SyncOperation,
        request: Dict[str, Any],
        error: BaseException,
        appointment_id: Optional[str] = None,
        discard_pending: bool = False,
    ) -> None:
        """Persist a failed attempt; committed so it survives the re-raise.

        Adapter failures happen before anything was written, so the session
        is left as is and instances loaded by the caller stay usable. Only a
        failed write (``discard_pending``) rolls the unit of work back first.
        """
        if discard_pending:
            await self.session.rollback()
        await self._record_sync(operation, request, appointment_id=appointment_id, error=error)
        await self.session.commit()

    async def _get_synced_appointment(self, appointment_id: str) -> Appointment:
        appointment = await self.get_appointment(appointment_id)
        if not appointment.external_id:
            raise MissingExternalIdError(appointment_id)
        return appointment

    async def create_appointment(self, data: CreateAppointmentRequest) -> Appointment:
        """Book an appointment externally and store it locally as CONFIRMED."""
        logger.info(f"Creating appointment for patient {data.patient_id}")
        request = data.to_payload()

        try:
            result = await self._call_adapter(lambda: self.adapter.create_appointment(data))
            self._ensure_success(result, require_external_id=True)
        except Exception as e:
            await self._record_failure(SyncOperation.CREATE, request, e)
            raise

        try:
            appointment = await self.appointments.create(
                external_id=result.external_id,
                adapter_type=self.adapter.name,
                patient_id=data.patient_id,
                professional_id=data.professional_id,
                scheduled_at=data.scheduled_at,
                status=AppointmentStatus.CONFIRMED,
                notes=data.notes,
                metadata_=data.metadata,
            )
            await self._record_sync(
                SyncOperation.CREATE,
                request,
                appointment_id=appointment.id,
                response=result.to_payload(),
            )
            await self.session.commit()
        except Exception as e:
            log_error(
                e,
                context={"operation": "CREATE", "adapter": self.adapter.name, "external_id": result.external_id},
            )
            await self._record_failure(SyncOperation.CREATE, request, e, discard_pending=True)
            raise

        logger.info(f"Appointment created successfully: {appointment.id} ({appointment.external_id})")
        return appointment

    async def update_appointment(self, appointment_id: str, data: UpdateAppointmentRequest) -> Appointment:
        """Apply a partial update externally, then locally.

        The ``core.updated`` event is published after the commit and a publish
        failure is only logged, so the update itself never fails on the broker.
        """
        logger.info(f"Updating appointment {appointment_id}")

        appointment = await self._get_synced_appointment(appointment_id)
        external_id = appointment.external_id
        request = data.to_payload()

        try:
            result = await self._call_adapter(
                lambda: self.adapter.update_appointment(external_id, data)
            )
            self._ensure_success(result)
        except Exception as e:
            await self._record_failure(SyncOperation.UPDATE, request, e, appointment_id=appointment_id)
            raise

        changes: Dict[str, Any] = {}
        if data.scheduled_at is not None:
            changes["scheduled_at"] = data.scheduled_at
        if data.professional_id is not None:
            changes["professional_id"] = data.professional_id
        if data.notes is not None:
            changes["notes"] = data.notes
        if data.metadata is not None:
            changes["metadata_"] = {**(appointment.metadata_ or {}), **data.metadata}

        try:
            appointment = await self.appointments.update(appointment_id, **changes)
            await self._record_sync(
                SyncOperation.UPDATE,
                request,
                appointment_id=appointment_id,
                response=result.to_payload(),
            )
            await self.session.commit()
        except Exception as e:
            log_error(
                e,
                context={"operation": "UPDATE", "adapter": self.adapter.name, "appointment_id": appointment_id},
            )
            await self._record_failure(
                SyncOperation.UPDATE, request, e, appointment_id=appointment_id, discard_pending=True
            )
            raise

        logger.info(f"Appointment updated successfully: {appointment_id}")

        await self._publish_updated(appointment)
        return appointment

    async def cancel_appointment(self, appointment_id: str, reason: Optional[str] = None) -> None:
        """Cancel externally, then mark CANCELLED locally.

        The reason is appended to the notes on its own line. No event is
        published here; the broker consumer publishes the cancellation.
        """
        logger.info(f"Cancelling appointment {appointment_id}")

        appointment = await self._get_synced_appointment(appointment_id)
        external_id = appointment.external_id
        request = {"reason": reason}

        try:
            await self._call_adapter(lambda: self.adapter.cancel_appointment(external_id, reason))
        except Exception as e:
            await self._record_failure(SyncOperation.CANCEL, request, e, appointment_id=appointment_id)
            raise

        changes: Dict[str, Any] = {"status": AppointmentStatus.CANCELLED}
        if reason:
            line = f"Cancellation reason: {reason}"
            changes["notes"] = f"{appointment.notes}\n{line}" if appointment.notes else line

        try:
            await self.appointments.update(appointment_id, **changes)
            await self._record_sync(SyncOperation.CANCEL, request, appointment_id=appointment_id)
            await self.session.commit()
        except Exception as e:
            log_error(
                e,
                context={"operation": "CANCEL", "adapter": self.adapter.name, "appointment_id": appointment_id},
            )
            await self._record_failure(
                SyncOperation.CANCEL, request, e, appointment_id=appointment_id, discard_pending=True
            )
            raise

        logger.info(f"Appointment cancelled successfully: {appointment_id}")

    async def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = await self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def get_appointments_by_patient(self, patient_id: str) -> List[Appointment]:
        """Local appointments of a patient, most recently scheduled first."""
        logger.info(f"Fetching appointments for patient {patient_id}")
        return await self.appointments.get_by_patient(patient_id)

    async def get_sync_logs(self, appointment_id: str) -> List[AppointmentSyncLog]:
        await self.get_appointment(appointment_id)
        return await self.sync_logs.list_by_appointment(appointment_id)

    async def check_availability(self, filters: AvailabilityFilters) -> List[AvailableSlot]:
        """Query availability through the breaker only; reads are not retried."""
        logger.info(f"Checking availability from {filters.start_date}")
        return await self.circuit_breaker.execute(lambda: self.adapter.check_availability(filters))

    async def health_check(self) -> Dict[str, Any]:
        healthy = await self.adapter.health_check()
        return {"adapter": self.adapter.name, "healthy": healthy}

    async def _publish_updated(self, appointment: Appointment) -> None:
        if self.publisher is None:
            return
        # The update is already committed; a lost event must not fail the request
        try:
            await self.publisher.publish_appointment_updated(
                {
                    "appointmentId": appointment.id,
                    "patientId": appointment.patient_id,
                    "professionalId": appointment.professional_id,
                    "scheduledAt": isoformat(appointment.scheduled_at),
                    "status": appointment.status.value,
                }
            )
        except Exception as e:
            log_error(
                e,
                context={"operation": "publish_appointment_updated", "appointment_id": appointment.id},
            )
