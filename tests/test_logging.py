"""Tests for structured JSON logging."""

import io
import json
import logging

import pytest

import photoqueue.logging as pq_logging
from photoqueue import __version__
from photoqueue.logging import (
    PhotoQueueJsonFormatter,
    get_logger,
    log_artifact_dropped,
    log_upload_failed,
    setup_logging,
)


@pytest.fixture
def json_logger():
    """Logger writing JSON lines into a buffer."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(PhotoQueueJsonFormatter())

    logger = get_logger("photoqueue.tests.audit")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(handler)
    yield logger, stream
    logger.removeHandler(handler)


def read_records(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


@pytest.fixture
def restore_root_logger(monkeypatch):
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    monkeypatch.setattr(pq_logging, "_agent_id", None)
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestJsonFormatter:
    """Test the fields stamped on every record."""

    def test_standard_fields(self, json_logger):
        logger, stream = json_logger

        logger.info("hello")

        record = read_records(stream)[0]
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["logger"] == "photoqueue.tests.audit"
        assert record["agent_version"] == __version__
        assert record["timestamp"].endswith("+00:00")

    def test_get_logger_is_cached(self):
        assert get_logger("photoqueue.sync") is get_logger("photoqueue.sync")


class TestAuditEvents:
    """Test the audit helper payloads."""

    def test_upload_failed(self, json_logger):
        logger, stream = json_logger

        log_upload_failed(logger, "a1", "Server error: 503", attempt_count=2)

        record = read_records(stream)[0]
        assert record["level"] == "WARNING"
        assert record["event"] == "upload_failed"
        assert record["artifact_id"] == "a1"
        assert record["attempt_count"] == 2

    def test_artifact_dropped_includes_owner(self, json_logger):
        logger, stream = json_logger

        log_artifact_dropped(logger, "a1", attempt_count=3, attributes={"user_id": "u1"})

        record = read_records(stream)[0]
        assert record["level"] == "ERROR"
        assert record["event"] == "artifact_dropped"
        assert record["attributes"] == {"user_id": "u1"}
        assert "error" not in record


class TestSetupLogging:
    """Test root logger configuration."""

    def test_writes_rotating_file(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "agent.log"

        setup_logging("debug", log_file=log_file, agent_id="courier-17")
        logging.getLogger("photoqueue.sync.queue").debug("queued")
        for handler in restore_root_logger.handlers:
            handler.flush()

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert restore_root_logger.level == logging.DEBUG
        assert record["message"] == "queued"
        assert record["agent_id"] == "courier-17"
