"""Tests for the JSON logging setup."""

import json
import logging

from pythonjsonlogger.json import JsonFormatter

from knowledge_pipeline.logging_config import QUIET_LOGGERS, build_logging_config


def test_level_is_applied_to_root():
    config = build_logging_config("debug")

    assert config["root"]["level"] == "DEBUG"
    assert config["root"]["handlers"] == ["stdout"]


def test_client_libraries_are_quieted():
    config = build_logging_config()

    assert set(config["loggers"]) == set(QUIET_LOGGERS)
    assert all(entry["level"] == "WARNING" for entry in config["loggers"].values())


def test_formatter_emits_severity_and_extra_fields():
    """Records render as JSON with renamed fields and the caller's extra context."""
    options = dict(build_logging_config()["formatters"]["json"])
    assert options.pop("()") == "pythonjsonlogger.json.JsonFormatter"
    formatter = JsonFormatter(options.pop("format"), **options)

    record = logging.LogRecord(
        "knowledge_pipeline.queue", logging.WARNING, __file__, 1, "Entry failed", None, None
    )
    record.knowledge_id = "k-1"
    payload = json.loads(formatter.format(record))

    assert payload["severity"] == "WARNING"
    assert payload["logger"] == "knowledge_pipeline.queue"
    assert payload["service"] == "knowledge-pipeline"
    assert payload["knowledge_id"] == "k-1"
    assert payload["message"] == "Entry failed"
