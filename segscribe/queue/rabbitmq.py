"""
segscribe/queue/rabbitmq.py
============================
RabbitMQ Work Queue - SegScribe

Responsibility:
    - Open a pika BlockingConnection from Settings
    - Declare the durable topology (priority job queue, results, dead letters)
    - Publish with publisher confirms so unroutable or nacked messages fail
      loudly instead of vanishing
    - Expose the channel's generator-based consume as the WorkQueue pull loop
    - Answer heartbeats on demand while the worker waits on a long job

Every pika exception is translated to TransmissionError. One instance owns
one connection and one channel and must not be shared across threads.
"""

import logging
from typing import Iterator

import pika
from pika.exceptions import AMQPError, NackError, UnroutableError

from segscribe.config import Settings
from segscribe.errors import TransmissionError
from segscribe.queue.base import TOPOLOGY, Delivery

logger = logging.getLogger("segscribe.queue.rabbitmq")

HEARTBEAT_SECONDS = 600
BLOCKED_CONNECTION_TIMEOUT = 300


class RabbitMQQueue:
    def __init__(self, connection: "pika.BlockingConnection"):
        self._connection = connection
        try:
            self._channel = connection.channel()
            self._channel.confirm_delivery()
        except AMQPError as exc:
            raise TransmissionError(f"Failed to open channel: {exc}") from exc

    @classmethod
    def connect(cls, settings: Settings) -> "RabbitMQQueue":
        """
        Connect to the broker named in ``settings``.

        Raises:
            TransmissionError: If the broker is unreachable or rejects the
                credentials.
        """
        params = pika.ConnectionParameters(
            host=settings.rabbitmq_host,
            port=settings.rabbitmq_port,
            credentials=pika.PlainCredentials(settings.rabbitmq_user, settings.rabbitmq_password),
            heartbeat=HEARTBEAT_SECONDS,
            blocked_connection_timeout=BLOCKED_CONNECTION_TIMEOUT,
        )
        try:
            connection = pika.BlockingConnection(params)
        except AMQPError as exc:
            raise TransmissionError(
                f"Cannot reach RabbitMQ at {settings.rabbitmq_host}:{settings.rabbitmq_port}: {exc}"
            ) from exc
        logger.info("Connected to RabbitMQ at %s:%d", settings.rabbitmq_host, settings.rabbitmq_port)
        return cls(connection)

    # -- WorkQueue ----------------------------------------------------------

    def declare_topology(self) -> None:
        try:
            for spec in TOPOLOGY:
                arguments = {"x-max-priority": spec.max_priority} if spec.max_priority else None
                self._channel.queue_declare(queue=spec.name, durable=True, arguments=arguments)
        except AMQPError as exc:
            raise TransmissionError(f"Failed to declare queues: {exc}") from exc

    def set_prefetch(self, count: int) -> None:
        try:
            self._channel.basic_qos(prefetch_count=count)
        except AMQPError as exc:
            raise TransmissionError(f"Failed to set prefetch: {exc}") from exc

    def publish(
        self,
        queue: str,
        body: bytes,
        *,
        priority: int | None = None,
        persistent: bool = True,
        mandatory: bool = False,
    ) -> None:
        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=pika.DeliveryMode.Persistent if persistent else pika.DeliveryMode.Transient,
            priority=priority,
        )
        try:
            self._channel.basic_publish(
                exchange="",
                routing_key=queue,
                body=body,
                properties=properties,
                mandatory=mandatory,
            )
        except UnroutableError as exc:
            raise TransmissionError(f"Message to {queue!r} was unroutable") from exc
        except NackError as exc:
            raise TransmissionError(f"Broker refused message to {queue!r}") from exc
        except AMQPError as exc:
            raise TransmissionError(f"Publish to {queue!r} failed: {exc}") from exc

    def consume(self, queue: str, *, inactivity_timeout: float = 1.0) -> Iterator[Delivery | None]:
        try:
            for method, properties, body in self._channel.consume(
                queue, inactivity_timeout=inactivity_timeout
            ):
                if method is None:
                    yield None
                    continue
                yield Delivery(
                    tag=method.delivery_tag,
                    body=body,
                    priority=(properties.priority or 0) if properties else 0,
                    redelivered=bool(method.redelivered),
                )
        except AMQPError as exc:
            raise TransmissionError(f"Consuming {queue!r} failed: {exc}") from exc
        finally:
            self._cancel_consumer()

    def _cancel_consumer(self) -> None:
        try:
            if self._channel.is_open:
                requeued = self._channel.cancel()
                if requeued:
                    logger.info("Returned %d prefetched message(s) to the broker", requeued)
        except AMQPError as exc:
            logger.warning("Could not cancel consumer: %s", exc)

    def ack(self, delivery: Delivery) -> None:
        try:
            self._channel.basic_ack(delivery_tag=delivery.tag)
        except AMQPError as exc:
            raise TransmissionError(f"Ack of delivery {delivery.tag} failed: {exc}") from exc

    def nack(self, delivery: Delivery, *, requeue: bool) -> None:
        try:
            self._channel.basic_nack(delivery_tag=delivery.tag, requeue=requeue)
        except AMQPError as exc:
            raise TransmissionError(f"Nack of delivery {delivery.tag} failed: {exc}") from exc

    def keepalive(self) -> None:
        """
        Answer heartbeats without blocking.

        pika only sends heartbeats from the thread that owns the connection,
        so the worker calls this in a loop while the engine runs elsewhere.
        """
        try:
            self._connection.process_data_events(time_limit=0)
        except AMQPError as exc:
            raise TransmissionError(f"Connection lost while processing: {exc}") from exc

    def close(self) -> None:
        try:
            if self._channel.is_open:
                self._channel.close()
            if self._connection.is_open:
                self._connection.close()
        except AMQPError as exc:
            logger.warning("Error while closing RabbitMQ connection: %s", exc)

    def __enter__(self) -> "RabbitMQQueue":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
