"""RabbitMQ gateway between the Core service and the Scheduling service.

Queue layout on the ``scheduling`` topic exchange:

Core -> Scheduling
    - ``scheduling.create_appointment`` (routing key ``scheduling.create``)
    - ``scheduling.cancel_appointment`` (routing key ``scheduling.cancel``)

Scheduling -> Core
    - ``core.appointment_confirmed`` (routing key ``core.confirmed``)
    - ``core.appointment_failed`` (routing key ``core.failed``)
    - ``core.appointment_updated`` (routing key ``core.updated``)
    - ``core.appointment_cancelled`` (routing key ``core.cancelled``)
"""

import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractIncomingMessage

from scheduling_service.config import RabbitMQSettings, get_settings
from scheduling_service.utils.errors import MalformedMessageError, QueueError
from scheduling_service.utils.logging import get_logger, log_error

logger = get_logger("messaging.rabbitmq")

RETRY_COUNT_HEADER = "x-retry-count"

ROUTING_CREATE = "scheduling.create"
ROUTING_CANCEL = "scheduling.cancel"
ROUTING_CONFIRMED = "core.confirmed"
ROUTING_FAILED = "core.failed"
ROUTING_UPDATED = "core.updated"
ROUTING_CANCELLED = "core.cancelled"

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def decode_payload(body: bytes) -> Dict[str, Any]:
    """Parse a message body that must be a JSON object."""
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessageError(f"Invalid JSON payload: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedMessageError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )
    return payload


class RabbitMQService:
    """Connection, topology, publishing and consuming for scheduling events."""

    def __init__(self, settings: Optional[RabbitMQSettings] = None):
        self.settings = settings or get_settings().rabbitmq
        self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self._queues: Dict[str, aio_pika.abc.AbstractQueue] = {}
        self._consumer_tags: List[Tuple[aio_pika.abc.AbstractQueue, str]] = []

    @property
    def bindings(self) -> List[Tuple[str, str]]:
        """(queue name, routing key) pairs declared on the exchange."""
        s = self.settings
        return [
            (s.create_queue, ROUTING_CREATE),
            (s.cancel_queue, ROUTING_CANCEL),
            (s.confirmed_queue, ROUTING_CONFIRMED),
            (s.failed_queue, ROUTING_FAILED),
            (s.updated_queue, ROUTING_UPDATED),
            (s.cancelled_queue, ROUTING_CANCELLED),
        ]

    async def connect(self) -> None:
        """Open a robust connection and declare the exchange and queues."""
        if self._connection and not self._connection.is_closed:
            return

        logger.info("Connecting to RabbitMQ")
        try:
            self._connection = await aio_pika.connect_robust(
                self.settings.url,
                heartbeat=self.settings.heartbeat,
                reconnect_interval=self.settings.reconnect_interval,
            )
            await self.setup_topology()
        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}", exc_info=True)
            raise QueueError(f"Failed to connect to RabbitMQ: {e}") from e

        logger.info("Connected to RabbitMQ")

    async def setup_topology(self) -> None:
        """Declare the topic exchange and every queue with its binding."""
        assert self._connection is not None

        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self.settings.prefetch_count)

        self._exchange = await self._channel.declare_exchange(
            name=self.settings.exchange_name,
            type=ExchangeType.TOPIC,
            durable=True,
        )
        logger.info(f"Declared exchange: {self.settings.exchange_name} (topic)")

        queue_arguments = {
            "x-message-ttl": self.settings.message_ttl,
            "x-max-length": self.settings.max_length,
        }

        for queue_name, routing_key in self.bindings:
            queue = await self._channel.declare_queue(
                name=queue_name,
                durable=True,
                arguments=queue_arguments,
            )
            await queue.bind(self._exchange, routing_key=routing_key)
            self._queues[queue_name] = queue
            logger.info(f"Queue '{queue_name}' bound to '{routing_key}'")

    async def publish(
        self,
        routing_key: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish a persistent JSON message on the exchange."""
        if self._exchange is None:
            raise QueueError("RabbitMQ exchange is not declared; call connect() first")

        message = Message(
            body=json.dumps(payload, default=str).encode("utf-8"),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            headers=headers or {},
        )
        try:
            await self._exchange.publish(message, routing_key=routing_key)
        except Exception as e:
            logger.error(f"Failed to publish to '{routing_key}': {e}")
            raise QueueError(f"Failed to publish to '{routing_key}'") from e

        logger.debug(f"Published to '{routing_key}'")

    async def publish_appointment_confirmed(self, data: Dict[str, Any]) -> None:
        await self.publish(ROUTING_CONFIRMED, self._event("appointment.confirmed", data))

    async def publish_appointment_updated(self, data: Dict[str, Any]) -> None:
        await self.publish(ROUTING_UPDATED, self._event("appointment.updated", data))

    async def publish_appointment_cancelled(self, data: Dict[str, Any]) -> None:
        await self.publish(ROUTING_CANCELLED, self._event("appointment.cancelled", data))

    async def publish_appointment_failed(self, error: str, request_data: Any = None) -> None:
        await self.publish(
            ROUTING_FAILED,
            {
                "event": "appointment.failed",
                "error": error,
                "requestData": request_data,
                "timestamp": utcnow_iso(),
            },
        )

    @staticmethod
    def _event(name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"event": name, "data": data, "timestamp": utcnow_iso()}

    async def consume(self, queue_name: str, handler: MessageHandler) -> None:
        """Start consuming ``queue_name`` with manual acknowledgment."""
        queue = self._queues.get(queue_name)
        if queue is None:
            raise QueueError(f"Queue '{queue_name}' is not declared")

        async def on_message(message: AbstractIncomingMessage) -> None:
            await self.process_message(message, queue_name, handler)

        consumer_tag = await queue.consume(on_message, no_ack=False)
        self._consumer_tags.append((queue, consumer_tag))
        logger.info(f"Consuming from queue '{queue_name}'")

    async def process_message(
        self,
        message: AbstractIncomingMessage,
        queue_name: str,
        handler: MessageHandler,
    ) -> None:
        """Decode, dispatch and settle one delivery.

        The message is acknowledged only after the handler returned. A handler
        error triggers a redelivery until ``max_delivery_attempts`` deliveries
        happened; the message is then discarded.
        """
        try:
            payload = decode_payload(message.body)
        except MalformedMessageError as e:
            logger.error(f"Malformed message on '{queue_name}': {e.message}")
            try:
                await self.publish_appointment_failed(
                    e.message, {"raw": message.body.decode("utf-8", errors="replace")}
                )
            except QueueError as publish_error:
                log_error(publish_error, context={"queue": queue_name, "stage": "malformed"})
            await message.ack()
            return

        logger.debug(f"Received from '{queue_name}'")

        try:
            await handler(payload)
        except Exception as e:
            logger.error(f"Error processing message from '{queue_name}': {e}", exc_info=True)
            await self._retry_or_discard(message, queue_name)
            return

        await message.ack()

    async def _retry_or_discard(self, message: AbstractIncomingMessage, queue_name: str) -> None:
        headers = dict(message.headers or {})
        retry_count = int(headers.get(RETRY_COUNT_HEADER, 0)) + 1

        if retry_count >= self.settings.max_delivery_attempts:
            logger.error(
                f"Max deliveries reached ({retry_count}/{self.settings.max_delivery_attempts}) "
                f"for message on '{queue_name}', discarding"
            )
            await message.reject(requeue=False)
            return

        # A plain requeue cannot change headers, so publish a copy with the new count
        headers[RETRY_COUNT_HEADER] = retry_count
        try:
            payload = json.loads(message.body.decode("utf-8"))
            await self.publish(message.routing_key or "", payload, headers=headers)
        except QueueError as e:
            log_error(e, context={"queue": queue_name, "stage": "redelivery"})
            await message.nack(requeue=True)
            return

        logger.warning(
            f"Redelivering message on '{queue_name}' "
            f"(delivery {retry_count + 1}/{self.settings.max_delivery_attempts})"
        )
        await message.ack()

    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def close(self) -> None:
        """Cancel consumers and close channel/connection."""
        for queue, consumer_tag in self._consumer_tags:
            try:
                await queue.cancel(consumer_tag)
            except Exception as e:
                logger.error(f"Error cancelling consumer {consumer_tag}: {e}")
        self._consumer_tags.clear()

        try:
            if self._channel and not self._channel.is_closed:
                await self._channel.close()
        finally:
            self._channel = None
            self._exchange = None
            self._queues.clear()
        try:
            if self._connection and not self._connection.is_closed:
                await self._connection.close()
                logger.info("Disconnected from RabbitMQ")
        finally:
            self._connection = None
