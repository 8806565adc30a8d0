"""Pytest fixtures and in-memory Pub/Sub fakes for relay tests."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import pytest
import structlog

from pubsub_relay.bridge import SubscriptionError
from pubsub_relay.config import FIELD_PARAMS, PARAM_CONFIG, env_name


class FakeMessage:
    """Received message that records how it was settled."""

    def __init__(self, message_id: str, data: bytes, attributes: dict[str, str] | None = None) -> None:
        self.message_id = message_id
        self.data = data
        self.attributes = attributes or {}
        self.ack_count = 0
        self.nack_count = 0
        self.on_settle: Callable[[], None] | None = None
        self._lock = threading.Lock()

    def ack(self) -> None:
        with self._lock:
            self.ack_count += 1
        self._settled()

    def nack(self) -> None:
        with self._lock:
            self.nack_count += 1
        self._settled()

    def _settled(self) -> None:
        if self.on_settle is not None:
            self.on_settle()


class FakeSubscription:
    """
    Delivers a fixed list of messages concurrently.

    A message counts as outstanding from delivery until it is acked or
    nacked; no more than max_outstanding are outstanding at once. After
    all messages are settled, raises SubscriptionError if `error` is set,
    otherwise returns.
    """

    def __init__(
        self,
        messages: list[FakeMessage],
        max_outstanding: int = 10,
        error: Exception | None = None,
    ) -> None:
        self.messages = messages
        self.max_outstanding = max_outstanding
        self.error = error
        self.outstanding = 0
        self.peak_outstanding = 0
        self.handler_errors: list[BaseException] = []
        self._slots = threading.Semaphore(max_outstanding)
        self._lock = threading.Lock()

    def _release(self) -> None:
        with self._lock:
            self.outstanding -= 1
        self._slots.release()

    def _deliver(self, handler: Callable[[Any], None], message: FakeMessage) -> None:
        try:
            handler(message)
        except BaseException as e:
            self.handler_errors.append(e)

    def receive(self, handler: Callable[[Any], None], stop: threading.Event) -> None:
        with ThreadPoolExecutor(max_workers=self.max_outstanding * 2) as pool:
            for message in self.messages:
                if stop.is_set():
                    break
                self._slots.acquire()
                with self._lock:
                    self.outstanding += 1
                    self.peak_outstanding = max(self.peak_outstanding, self.outstanding)
                message.on_settle = self._release
                pool.submit(self._deliver, handler, message)

        if self.error is not None:
            raise SubscriptionError(str(self.error)) from self.error


class BlockingSubscription:
    """Delivers nothing and returns once stop is set."""

    def __init__(self) -> None:
        self.receiving = threading.Event()

    def receive(self, handler: Callable[[Any], None], stop: threading.Event) -> None:
        self.receiving.set()
        stop.wait(timeout=5)


class FakeTopic:
    """Records published messages; fails for message ids listed in `failures`."""

    def __init__(self, failures: dict[str, Exception] | None = None, delay: float = 0.0) -> None:
        self.failures = failures or {}
        self.delay = delay
        self.published: list[tuple[bytes, dict[str, str]]] = []
        self._lock = threading.Lock()

    def publish(self, message: Any) -> str:
        if self.delay:
            time.sleep(self.delay)
        if message.message_id in self.failures:
            raise self.failures[message.message_id]
        with self._lock:
            self.published.append((message.data, dict(message.attributes)))
            return f"dest-{len(self.published)}"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Each test starts with structlog's default configuration."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every relay environment variable."""
    for param in [PARAM_CONFIG, *FIELD_PARAMS.values()]:
        monkeypatch.delenv(env_name(param), raising=False)
    return monkeypatch
