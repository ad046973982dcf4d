"""AMQP client used by the gateway publisher and the conversion worker."""
from __future__ import annotations

import logging
import socket
import time
from threading import Event, RLock
from typing import Any, Callable, Dict, Optional, Tuple

from kombu import Connection, Consumer, Exchange, Producer, Queue

from ..config import BrokerSettings
from ..exceptions import BrokerConnectionError, BrokerError, ConfigurationError
from .delivery import Delivery

LOGGER = logging.getLogger(__name__)

DEFAULT_EXCHANGE = Exchange("")
PERSISTENT_DELIVERY_MODE = 2


class BrokerClient:
    """Own one broker connection/channel pair and the queues declared on it."""

    def __init__(
        self,
        settings: BrokerSettings,
        *,
        connection_factory: Optional[Callable[[], Connection]] = None,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = 1.0,
    ) -> None:
        self.settings = settings
        self._connection_factory = connection_factory or self._default_connection
        self._sleep = sleep
        self.poll_interval = max(0.05, poll_interval)
        self._connection: Optional[Connection] = None
        self._channel: Any = None
        self._producer: Optional[Producer] = None
        self._queues: Dict[str, Queue] = {}
        self._queue_specs: Dict[str, Tuple[bool, bool]] = {}
        self._prefetch: Optional[int] = None
        self._cancel = Event()
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Open a connection, retrying with a fixed delay between attempts."""

        max_attempts = self.settings.max_attempts
        last_error: Optional[BaseException] = None
        with self._lock:
            for attempt in range(1, max_attempts + 1):
                LOGGER.info("Attempting to connect to RabbitMQ (attempt %d/%d)", attempt, max_attempts)
                connection = None
                try:
                    connection = self._connection_factory()
                    connection.connect()
                    channel = connection.channel()
                except Exception as exc:
                    last_error = exc
                    LOGGER.warning("Failed to connect to RabbitMQ: %s", exc)
                    self._release(connection)
                    if attempt >= max_attempts:
                        LOGGER.error("Max retries exceeded. Giving up connection to RabbitMQ.")
                        break
                    LOGGER.info("Retrying in %.1f seconds...", self.settings.retry_delay)
                    self._sleep(self.settings.retry_delay)
                    continue

                self._connection = connection
                self._channel = channel
                self._producer = Producer(channel)
                LOGGER.info("Successfully connected to RabbitMQ")
                self._restore_topology()
                return

        raise BrokerConnectionError(
            f"Unable to connect to RabbitMQ after {max_attempts} attempt(s): {last_error}"
        ) from last_error

    def reconnect(self) -> None:
        """Tear down the current connection and establish a fresh one."""

        LOGGER.info("Forcing RabbitMQ reconnect")
        self.close()
        self.connect()

    def close(self) -> None:
        """Close channel then connection; errors are logged, never raised."""

        with self._lock:
            channel, self._channel = self._channel, None
            connection, self._connection = self._connection, None
            self._producer = None
            self._queues.clear()

        if channel is not None:
            try:
                channel.close()
            except Exception as exc:
                LOGGER.warning("Error closing channel: %s", exc)
        if connection is not None:
            self._release(connection)
        LOGGER.info("RabbitMQ connection closed")

    @property
    def is_connected(self) -> bool:
        connection = self._connection
        return connection is not None and self._channel is not None and bool(connection.connected)

    def ensure_connected(self) -> None:
        if not self.is_connected:
            self.connect()

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------
    def declare_queue(self, name: str, *, durable: bool = True, auto_delete: bool = False) -> None:
        """Declare ``name`` (and its dead-letter queue) on the open channel."""

        if self.settings.queue_type == "quorum" and (not durable or auto_delete):
            raise ConfigurationError(f"Quorum queue {name} must be durable and not auto-delete")
        with self._lock:
            channel = self._require_channel()
            arguments: Dict[str, Any] = self._type_arguments()
            dead_letter = self.settings.dead_letter_queue(name)
            if dead_letter:
                dlq = Queue(
                    dead_letter,
                    exchange=DEFAULT_EXCHANGE,
                    routing_key=dead_letter,
                    durable=True,
                    auto_delete=False,
                    queue_arguments=self._type_arguments() or None,
                )
                dlq(channel).declare()
                arguments["x-dead-letter-exchange"] = ""
                arguments["x-dead-letter-routing-key"] = dead_letter

            queue = Queue(
                name,
                exchange=DEFAULT_EXCHANGE,
                routing_key=name,
                durable=durable,
                auto_delete=auto_delete,
                queue_arguments=arguments or None,
            )
            bound = queue(channel)
            bound.declare()
            self._queues[name] = bound
            self._queue_specs[name] = (durable, auto_delete)
        LOGGER.info("Declared queue: %s (dead-letter=%s)", name, dead_letter or "-")

    def ensure_queue(self, name: str) -> None:
        """Connect and declare ``name`` unless both already happened."""

        with self._lock:
            self.ensure_connected()
            if name not in self._queues:
                self.declare_queue(name)

    def set_prefetch(self, count: int) -> None:
        if count < 1:
            raise ConfigurationError("prefetch count must be at least 1")
        with self._lock:
            channel = self._require_channel()
            channel.basic_qos(0, count, False)
            self._prefetch = count
        LOGGER.info("Set prefetch count to: %d", count)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------
    def publish(self, queue: str, body: str | bytes) -> None:
        """Publish ``body`` to ``queue`` with persistent delivery mode."""

        with self._lock:
            if self._channel is None or self._producer is None:
                raise BrokerError(f"Channel is not open; cannot publish to {queue}")
            if queue not in self._queues:
                raise BrokerError(f"Queue {queue} has not been declared")
            try:
                self._producer.publish(
                    body,
                    exchange="",
                    routing_key=queue,
                    delivery_mode=PERSISTENT_DELIVERY_MODE,
                    content_type="application/json",
                    content_encoding="utf-8",
                    retry=False,
                )
            except Exception as exc:
                raise BrokerError(f"Failed to publish to {queue}: {exc}") from exc
        LOGGER.info("Published message to queue: %s", queue)

    def consume(self, queue: str, handler: Callable[[Delivery], None]) -> None:
        """Block, invoking ``handler`` once per delivery until cancelled.

        Connection failures propagate to the caller.
        """

        with self._lock:
            channel = self._require_channel()
            bound = self._queues.get(queue)
            if bound is None:
                raise BrokerError(f"Queue {queue} has not been declared")
            connection = self._connection

        def _on_message(message: Any) -> None:
            delivery = Delivery(
                body=message.body,
                headers=message.headers,
                delivery_tag=message.delivery_tag,
                redelivered=bool((message.delivery_info or {}).get("redelivered")),
                message=message,
            )
            handler(delivery)

        self._cancel.clear()
        consumer = Consumer(channel, queues=[bound], on_message=_on_message, no_ack=False, auto_declare=False)
        consumer.consume()
        LOGGER.info("Started consuming from queue: %s", queue)
        try:
            while not self._cancel.is_set():
                try:
                    connection.drain_events(timeout=self.poll_interval)
                except socket.timeout:
                    if self.settings.heartbeat:
                        connection.heartbeat_check()
        finally:
            try:
                consumer.cancel()
            except Exception as exc:
                LOGGER.warning("Error cancelling consumer on %s: %s", queue, exc)
        LOGGER.info("Stopped consuming from queue: %s", queue)

    def cancel(self) -> None:
        """Ask a running :meth:`consume` loop to return."""

        self._cancel.set()

    def ack(self, delivery: Delivery) -> None:
        delivery.mark_settled("ack")
        delivery.message.ack()
        LOGGER.debug("Message acknowledged (tag=%s)", delivery.delivery_tag)

    def nack(self, delivery: Delivery, *, requeue: bool) -> None:
        delivery.mark_settled("requeue" if requeue else "dead-letter")
        delivery.message.reject(requeue=requeue)
        LOGGER.debug(
            "Message negative acknowledged (tag=%s), requeue: %s",
            delivery.delivery_tag,
            "yes" if requeue else "no",
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _default_connection(self) -> Connection:
        return Connection(self.settings.url, heartbeat=self.settings.heartbeat)

    def _require_channel(self) -> Any:
        if self._channel is None:
            raise BrokerError("Channel is not open; call connect() first")
        return self._channel

    def _type_arguments(self) -> Dict[str, Any]:
        if self.settings.queue_type == "quorum":
            return {"x-queue-type": "quorum"}
        return {}

    def _restore_topology(self) -> None:
        specs = dict(self._queue_specs)
        for name, (durable, auto_delete) in specs.items():
            self.declare_queue(name, durable=durable, auto_delete=auto_delete)
        if self._prefetch is not None:
            self.set_prefetch(self._prefetch)

    @staticmethod
    def _release(connection: Optional[Connection]) -> None:
        if connection is None:
            return
        try:
            connection.release()
        except Exception as exc:
            LOGGER.warning("Error closing connection: %s", exc)


__all__ = ["BrokerClient"]
