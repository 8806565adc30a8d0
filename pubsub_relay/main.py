"""
Relay entry point.

Usage:
    pubsub-relay --from-google-cloud-project=source-project \\
        --to-google-cloud-project=destination-project \\
        --pubsub-subscription=orders-relay \\
        --pubsub-destination-topic=orders

Every flag can also be given as an environment variable (upper-cased, dashes
as underscores, e.g. PUBSUB_SUBSCRIPTION) or in the file named by --config.
Flags win over the environment, which wins over the file.

Exit codes:
    0: Stopped by SIGTERM/SIGINT
    1: Bad configuration, credentials or clients, or the subscription failed
"""

import argparse
import sys

import structlog

from pubsub_relay.bridge import ClientError, RelayBridge, SubscriptionError
from pubsub_relay.clients import open_subscription, open_topic
from pubsub_relay.config import (
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_OUTSTANDING_MESSAGES,
    LOG_FORMATS,
    PARAM_CONFIG,
    PARAM_DESTINATION_TOPIC,
    PARAM_FROM_CREDENTIALS,
    PARAM_FROM_PROJECT,
    PARAM_LOG_FORMAT,
    PARAM_LOG_LEVEL,
    PARAM_MAX_OUTSTANDING,
    PARAM_SUBSCRIPTION,
    PARAM_TO_CREDENTIALS,
    PARAM_TO_PROJECT,
    ConfigError,
    RelayConfig,
)
from pubsub_relay.credentials import CredentialsError, resolve_credentials
from pubsub_relay.logs import configure_logging

log = structlog.get_logger()

# (parameter, help); defaults live in RelayConfig so unset flags stay None
_FLAGS = [
    (PARAM_CONFIG, "Config file. All flags given in command line will override the values from this file."),
    (PARAM_LOG_FORMAT, f"Log format ({'|'.join(LOG_FORMATS)}, default: {DEFAULT_LOG_FORMAT})"),
    (PARAM_LOG_LEVEL, f"Log level (default: {DEFAULT_LOG_LEVEL})"),
    (PARAM_FROM_PROJECT, "Google Cloud project where the subscription is defined"),
    (PARAM_TO_PROJECT, "Google Cloud project where the destination topic is defined"),
    (PARAM_FROM_CREDENTIALS, "Google Cloud credentials JSON used for subscription access"),
    (PARAM_TO_CREDENTIALS, "Google Cloud credentials JSON used for publication access"),
    (PARAM_SUBSCRIPTION, "Source Pub/Sub subscription"),
    (PARAM_DESTINATION_TOPIC, "Destination Pub/Sub topic"),
    (
        PARAM_MAX_OUTSTANDING,
        f"Maximum unacknowledged messages in flight (default: {DEFAULT_MAX_OUTSTANDING_MESSAGES})",
    ),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pubsub-relay",
        description="Relay messages from a Pub/Sub subscription to a Pub/Sub topic",
    )
    for param, help_text in _FLAGS:
        parser.add_argument(f"--{param}", dest=param, default=None, help=help_text)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the relay. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = RelayConfig.load(vars(args))
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1

    configure_logging(config.log_level, config.log_format)
    log.debug("configuration", **config.redacted())

    try:
        config.validate()
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1

    try:
        from_credentials = resolve_credentials(config.from_credentials, "source")
        to_credentials = resolve_credentials(config.to_credentials, "destination")
    except CredentialsError as e:
        log.error("credentials_invalid", side=e.side, error=e.reason)
        return 1

    try:
        subscription = open_subscription(config, from_credentials)
        topic = open_topic(config, to_credentials)
    except ClientError as e:
        log.error("pubsub_client_failed", error=str(e))
        return 1

    bridge = RelayBridge(config, subscription, topic)
    try:
        bridge.run()
    except SubscriptionError as e:
        log.error("relay_terminated", error=str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
