"""
pubsub-relay - forward messages from one Pub/Sub subscription to another topic.

The source subscription and destination topic may live in different Google
Cloud projects with different credentials. A source message is acked only
after the destination publish succeeds and nacked otherwise.

Usage:
    python -m pubsub_relay.main

Environment Variables:
    FROM_GOOGLE_CLOUD_PROJECT: Project owning the subscription
    TO_GOOGLE_CLOUD_PROJECT: Project owning the destination topic
    FROM_GOOGLE_APPLICATION_CREDENTIALS_JSON: Source credentials JSON
    TO_GOOGLE_APPLICATION_CREDENTIALS_JSON: Destination credentials JSON
    PUBSUB_SUBSCRIPTION: Source subscription name
    PUBSUB_DESTINATION_TOPIC: Destination topic name
    PUBSUB_MAX_OUTSTANDING_MESSAGES: In-flight bound (default: 10)
    LOG_FORMAT: "json" or "text" (default: json)
    LOG_LEVEL: Log level (default: debug)
"""

__version__ = "0.1.0"
