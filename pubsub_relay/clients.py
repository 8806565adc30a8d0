"""Google Cloud Pub/Sub adapters for the relay's Subscription and Topic."""

import threading
from concurrent.futures import CancelledError, TimeoutError as FuturesTimeoutError
from typing import Callable

import structlog
from google.api_core.exceptions import GoogleAPIError
from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from google.cloud import pubsub_v1

from pubsub_relay.bridge import ClientError, Message, SubscriptionError
from pubsub_relay.config import RelayConfig

log = structlog.get_logger()

# How often the receive loop checks for a stop request
STOP_POLL_SECONDS = 1.0


class PubSubSubscription:
    """Streaming pull subscription with a bound on outstanding messages."""

    def __init__(
        self,
        client: pubsub_v1.SubscriberClient,
        subscription_path: str,
        max_outstanding_messages: int,
    ) -> None:
        self._client = client
        self.subscription_path = subscription_path
        self.max_outstanding_messages = max_outstanding_messages

    def receive(self, handler: Callable[[Message], None], stop: threading.Event) -> None:
        """
        Deliver messages to handler until stop is set or the stream fails.

        Stopping cancels the streaming pull but waits for callbacks that
        are already running.

        Raises:
            SubscriptionError: If the streaming pull terminates with an error
        """
        flow_control = pubsub_v1.types.FlowControl(
            max_messages=self.max_outstanding_messages,
        )
        future = self._client.subscribe(
            self.subscription_path,
            callback=handler,
            flow_control=flow_control,
            await_callbacks_on_shutdown=True,
        )
        log.info(
            "subscription_receiving",
            subscription=self.subscription_path,
            max_outstanding_messages=self.max_outstanding_messages,
        )

        try:
            while not stop.is_set():
                try:
                    future.result(timeout=STOP_POLL_SECONDS)
                except FuturesTimeoutError:
                    continue
                # The stream ended on its own without an error
                return

            future.cancel()
            future.result()
            log.info("subscription_stopped", subscription=self.subscription_path)
        except CancelledError:
            log.info("subscription_cancelled", subscription=self.subscription_path)
        except Exception as e:
            raise SubscriptionError(
                f"Subscription {self.subscription_path} failed: {e}"
            ) from e


class PubSubTopic:
    """
    Destination topic. publish() waits for the server to accept the message.

    Goes through the generated API client rather than the batching
    publish(), whose keyword arguments (ordering_key, retry, timeout) would
    capture attributes with those names.
    """

    def __init__(self, client: pubsub_v1.PublisherClient, topic_path: str) -> None:
        self._client = client
        self.topic_path = topic_path

    def publish(self, message: Message) -> str:
        pubsub_message = pubsub_v1.types.PubsubMessage(
            data=message.data,
            attributes=dict(message.attributes or {}),
        )
        response = self._client.api.publish(topic=self.topic_path, messages=[pubsub_message])
        return response.message_ids[0]


def open_subscription(config: RelayConfig, credentials: Credentials) -> PubSubSubscription:
    """
    Create the source subscription from configuration.

    Raises:
        ClientError: If the subscriber client can't be created
    """
    try:
        client = pubsub_v1.SubscriberClient(credentials=credentials)
        path = client.subscription_path(config.from_project, config.subscription)
    except (GoogleAPIError, GoogleAuthError, ValueError) as e:
        raise ClientError(f"Could not create source Pub/Sub client: {e}") from e

    return PubSubSubscription(client, path, config.max_outstanding_messages)


def open_topic(config: RelayConfig, credentials: Credentials) -> PubSubTopic:
    """
    Create the destination topic from configuration.

    Raises:
        ClientError: If the publisher client can't be created
    """
    try:
        client = pubsub_v1.PublisherClient(credentials=credentials)
        path = client.topic_path(config.to_project, config.destination_topic)
    except (GoogleAPIError, GoogleAuthError, ValueError) as e:
        raise ClientError(f"Could not create destination Pub/Sub client: {e}") from e

    return PubSubTopic(client, path)
