"""Logging setup for the relay.

JSON output uses the `severity` and `message` keys so Cloud Logging picks up
the level and text of each entry. Text output is for local runs.
"""

import logging
import sys
from typing import Any

import structlog

log = structlog.get_logger()

# Accepted level names -> stdlib levels
LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


def _add_severity(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Move the structlog level into a Cloud Logging `severity` field."""
    level = event_dict.pop("level", method_name)
    if level == "warn":
        level = "warning"
    event_dict["severity"] = level.upper()
    return event_dict


def parse_level(level: str) -> int | None:
    """Return the stdlib level for a level name, or None if unknown."""
    return LOG_LEVELS.get(level.strip().lower())


def configure_logging(level: str, fmt: str) -> None:
    """
    Configure structlog for the given level name and output format.

    An unknown level name is reported and info is used instead.

    Args:
        level: Level name (trace, debug, info, warn, error, fatal, panic)
        fmt: "json" or "text"
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if fmt == "json":
        processors += [
            _add_severity,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    min_level = parse_level(level)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.INFO if min_level is None else min_level
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )

    if min_level is None:
        log.error("log_level_invalid", log_level=level, fallback="info")
