"""Pub/Sub to Pub/Sub relay.

Receives messages from a source subscription and republishes them to a
destination topic:
- Destination publish is awaited before the source message is settled
- Publish success acks the source message, publish failure nacks it
- Outstanding messages are bounded by the subscription's flow control
- Graceful shutdown on SIGTERM/SIGINT lets in-flight messages finish

Delivery is at-least-once; redelivery after a nack is left to the broker.
"""

import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import structlog

from pubsub_relay.config import RelayConfig

log = structlog.get_logger()


class RelayError(Exception):
    """Base error for relay failures."""


class ClientError(RelayError):
    """A Pub/Sub client could not be created."""


class SubscriptionError(RelayError):
    """The source subscription stopped delivering messages."""


class Message(Protocol):
    """A delivered message, settled exactly once with ack() or nack()."""

    message_id: str
    data: bytes
    attributes: Any

    def ack(self) -> None:
        ...

    def nack(self) -> None:
        ...


class Subscription(Protocol):
    """Source side: delivers messages to a handler until stopped or broken."""

    def receive(self, handler: Callable[[Message], None], stop: threading.Event) -> None:
        """
        Call handler for each message, concurrently up to the outstanding bound.

        Returns when stop is set. Raises SubscriptionError if delivery fails.
        """
        ...


class Topic(Protocol):
    """Destination side."""

    def publish(self, message: Message) -> str:
        """Publish data and attributes, block until done, return the new message id."""
        ...


@dataclass
class RelayMetrics:
    """Counters for monitoring relay health. Safe to update from handler threads."""
    messages_received: int = 0
    messages_acked: int = 0
    messages_nacked: int = 0
    in_flight: int = 0
    in_flight_high_water: int = 0
    last_message_at: datetime | None = None
    last_publish_at: datetime | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def received(self) -> None:
        with self._lock:
            self.messages_received += 1
            self.in_flight += 1
            self.in_flight_high_water = max(self.in_flight_high_water, self.in_flight)
            self.last_message_at = datetime.now(timezone.utc)

    def acked(self) -> None:
        with self._lock:
            self.messages_acked += 1
            self.in_flight -= 1
            self.last_publish_at = datetime.now(timezone.utc)

    def nacked(self) -> None:
        with self._lock:
            self.messages_nacked += 1
            self.in_flight -= 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "messages_received": self.messages_received,
                "messages_acked": self.messages_acked,
                "messages_nacked": self.messages_nacked,
                "in_flight": self.in_flight,
                "in_flight_high_water": self.in_flight_high_water,
                "last_message_at": (
                    self.last_message_at.isoformat() if self.last_message_at else None
                ),
            }


def relay(
    subscription: Subscription,
    topic: Topic,
    stop: threading.Event,
    metrics: RelayMetrics | None = None,
) -> None:
    """
    Relay every message from subscription to topic until stopped.

    Each message is published and the publish awaited. On success the
    source message is acked; on any publish error it is nacked so the
    broker redelivers it later. Publish errors never stop the loop.

    Args:
        subscription: Source of messages
        topic: Destination for messages
        stop: Set to stop receiving; in-flight messages still complete
        metrics: Optional counters to update

    Raises:
        SubscriptionError: If the subscription fails
    """
    metrics = metrics or RelayMetrics()

    def handle(message: Message) -> None:
        metrics.received()
        try:
            published_id = topic.publish(message)
        except Exception as e:
            log.error(
                "relay_publish_failed",
                error=str(e),
                error_type=type(e).__name__,
                message_id=message.message_id,
            )
            metrics.nacked()
            message.nack()
            return

        metrics.acked()
        message.ack()
        log.debug(
            "message_relayed",
            message_id=message.message_id,
            published_id=published_id,
        )

    subscription.receive(handle, stop)


class RelayBridge:
    """Runs the relay as a process: signals, metrics, shutdown summary."""

    def __init__(self, config: RelayConfig, subscription: Subscription, topic: Topic) -> None:
        self.config = config
        self.subscription = subscription
        self.topic = topic
        self.metrics = RelayMetrics()
        self._shutdown = threading.Event()

        log.info(
            "relay_initialised",
            subscription=config.subscription,
            from_project=config.from_project,
            destination_topic=config.destination_topic,
            to_project=config.to_project,
            max_outstanding_messages=config.max_outstanding_messages,
        )

    def run(self) -> None:
        """
        Relay until a shutdown signal arrives or the subscription fails.

        Raises:
            SubscriptionError: If the subscription fails
        """
        previous = {
            sig: signal.signal(sig, self._handle_shutdown)
            for sig in (signal.SIGTERM, signal.SIGINT)
        }

        log.info("relay_started", subscription=self.config.subscription)

        try:
            relay(self.subscription, self.topic, self._shutdown, self.metrics)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            log.info("relay_shutdown_complete", **self.metrics.snapshot())

    def stop(self) -> None:
        """Stop receiving new messages."""
        self._shutdown.set()

    def _handle_shutdown(self, signum: int, frame: Any) -> None:
        """Signal handler for graceful shutdown."""
        log.info("shutdown_signal_received", signal=signum)
        self.stop()

    def get_health(self) -> dict[str, Any]:
        """Return health check data."""
        metrics = self.metrics.snapshot()
        lag_seconds = None
        if metrics["last_message_at"]:
            lag_seconds = (
                datetime.now(timezone.utc) - datetime.fromisoformat(metrics["last_message_at"])
            ).total_seconds()

        return {
            "status": "stopping" if self._shutdown.is_set() else "running",
            "subscription": self.config.subscription,
            "destination_topic": self.config.destination_topic,
            "max_outstanding_messages": self.config.max_outstanding_messages,
            "lag_seconds": lag_seconds,
            "metrics": metrics,
        }
