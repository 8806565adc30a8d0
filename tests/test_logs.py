"""Logging configuration tests."""

import json
import logging

import pytest
import structlog

from pubsub_relay.logs import configure_logging, parse_level


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@pytest.mark.parametrize(
    ("name", "level"),
    [
        ("trace", logging.DEBUG),
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("warn", logging.WARNING),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
        ("fatal", logging.CRITICAL),
        ("panic", logging.CRITICAL),
        ("verbose", None),
    ],
)
def test_parse_level(name: str, level: int | None) -> None:
    assert parse_level(name) == level


def test_json_format_uses_cloud_logging_keys(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("info", "json")

    structlog.get_logger().warning("relay_publish_failed", error="unavailable")

    entries = _json_lines(capsys.readouterr().err)
    assert len(entries) == 1
    entry = entries[0]
    assert entry["severity"] == "WARNING"
    assert entry["message"] == "relay_publish_failed"
    assert entry["error"] == "unavailable"
    assert "timestamp" in entry
    assert "event" not in entry
    assert "level" not in entry


def test_level_filters_lower_entries(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("error", "json")

    logger = structlog.get_logger()
    logger.info("hidden")
    logger.error("shown")

    entries = _json_lines(capsys.readouterr().err)
    assert [e["message"] for e in entries] == ["shown"]


def test_unknown_level_falls_back_to_info(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("verbose", "json")

    logger = structlog.get_logger()
    logger.debug("hidden")
    logger.info("shown")

    entries = _json_lines(capsys.readouterr().err)
    assert entries[0]["message"] == "log_level_invalid"
    assert entries[0]["severity"] == "ERROR"
    assert entries[0]["log_level"] == "verbose"
    assert [e["message"] for e in entries[1:]] == ["shown"]


def test_text_format(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("debug", "text")

    structlog.get_logger().debug("configuration", pubsub_subscription="orders-relay")

    output = capsys.readouterr().err
    assert "configuration" in output
    assert "orders-relay" in output
