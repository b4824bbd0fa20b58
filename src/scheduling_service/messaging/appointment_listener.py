"""Consumers for appointment commands sent by the Core service.

For every command processed, a response event is published back:

- ``core.confirmed`` when a create succeeded
- ``core.cancelled`` when a cancel succeeded
- ``core.failed`` when either failed
"""

import asyncio
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, Optional

from scheduling_service.config import RabbitMQSettings, get_settings
from scheduling_service.messaging.rabbitmq import RabbitMQService
from scheduling_service.models.appointments import AppointmentResponse, CreateAppointmentRequest
from scheduling_service.services.scheduling_service import SchedulingService
from scheduling_service.utils.errors import MalformedMessageError, QueueError
from scheduling_service.utils.logging import get_logger

logger = get_logger("messaging.listener")

# Opens a unit of work (database session) and yields a service bound to it
ServiceFactory = Callable[[], AsyncContextManager[SchedulingService]]


class AppointmentListener:
    """Handles ``scheduling.create_appointment`` and ``scheduling.cancel_appointment``."""

    def __init__(
        self,
        rabbitmq: RabbitMQService,
        service_factory: ServiceFactory,
        settings: Optional[RabbitMQSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rabbitmq = rabbitmq
        self.service_factory = service_factory
        self.settings = settings or get_settings().rabbitmq
        self._sleep = sleep

    async def start(self) -> None:
        """Wait for the broker, then register both consumers."""
        await self.wait_for_connection()

        logger.info("Starting appointment event listeners")
        await self.rabbitmq.consume(self.settings.create_queue, self.handle_create_appointment)
        await self.rabbitmq.consume(self.settings.cancel_queue, self.handle_cancel_appointment)
        logger.info("Appointment listeners started")

    async def wait_for_connection(self) -> None:
        attempts = 0
        while not self.rabbitmq.is_connected() and attempts < self.settings.connection_wait_attempts:
            logger.info("Waiting for RabbitMQ connection...")
            await self._sleep(self.settings.connection_wait_interval)
            attempts += 1

        if not self.rabbitmq.is_connected():
            raise QueueError(
                f"Failed to connect to RabbitMQ after {attempts} attempts",
                details={"attempts": attempts},
            )

    async def handle_create_appointment(self, message: Dict[str, Any]) -> None:
        """Create an appointment from a ``scheduling.create`` command."""
        data = message.get("data")
        logger.info("Processing CREATE APPOINTMENT event")

        try:
            if not isinstance(data, dict):
                raise MalformedMessageError("Invalid message format: missing data field")

            request = CreateAppointmentRequest.model_validate(data)
            async with self.service_factory() as service:
                appointment = await service.create_appointment(request)

            logger.info(f"Appointment created: {appointment.id}")

            created = AppointmentResponse.model_validate(appointment)
            await self.rabbitmq.publish_appointment_confirmed(
                {
                    "appointmentId": created.id,
                    "externalId": created.external_id,
                    "patientId": created.patient_id,
                    "professionalId": created.professional_id,
                    "scheduledAt": created.scheduled_at.isoformat(),
                    "status": created.status.value,
                    "adapterType": created.adapter_type,
                    "metadata": created.metadata,
                }
            )
        except Exception as e:
            logger.error(f"Failed to create appointment: {e}")
            await self.rabbitmq.publish_appointment_failed(_error_message(e), data)

    async def handle_cancel_appointment(self, message: Dict[str, Any]) -> None:
        """Cancel an appointment from a ``scheduling.cancel`` command."""
        data = message.get("data")
        logger.info("Processing CANCEL APPOINTMENT event")

        try:
            if not isinstance(data, dict) or not data.get("appointmentId"):
                raise MalformedMessageError("Invalid message format: missing appointmentId")

            appointment_id = str(data["appointmentId"])
            reason = data.get("reason")

            async with self.service_factory() as service:
                await service.cancel_appointment(appointment_id, reason)
                appointment = await service.get_appointment(appointment_id)

            logger.info(f"Appointment cancelled: {appointment_id}")

            await self.rabbitmq.publish_appointment_cancelled(
                {
                    "appointmentId": appointment.id,
                    "patientId": appointment.patient_id,
                    "status": appointment.status.value,
                    "reason": reason,
                }
            )
        except Exception as e:
            logger.error(f"Failed to cancel appointment: {e}")
            await self.rabbitmq.publish_appointment_failed(_error_message(e), data)


def _error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)
