"""RabbitMQ messaging: gateway and command consumers."""

from scheduling_service.messaging.appointment_listener import AppointmentListener
from scheduling_service.messaging.rabbitmq import RabbitMQService

__all__ = ["AppointmentListener", "RabbitMQService"]
