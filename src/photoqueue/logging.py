"""Structured JSON logging for the photoqueue agent.

Provides audit-friendly logging with contextual fields for queue events,
upload attempts, and connectivity changes. Payloads are never logged.

Usage:
    from photoqueue.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("photoqueue.sync")
    log.info("artifact_enqueued", extra={"artifact_id": "...", "queue_size": 3})
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger import jsonlogger

from photoqueue import __version__

_agent_id: str | None = None


class PhotoQueueJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds agent context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["agent_version"] = __version__
        if _agent_id:
            log_record["agent_id"] = _agent_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    agent_id: str | None = None,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        agent_id: Unique identifier for this agent instance
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    global _agent_id
    if agent_id:
        _agent_id = agent_id

    formatter = PhotoQueueJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr so stdout stays free for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Get a named logger.

    Args:
        name: Logger name (e.g., 'photoqueue.sync')

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


# --- Audit Event Functions ---


def log_artifact_enqueued(
    logger: logging.Logger,
    artifact_id: str,
    queue_size: int,
) -> None:
    """Log an artifact accepted into the queue.

    Args:
        logger: Logger instance
        artifact_id: Queue-assigned artifact identifier
        queue_size: Queue size after the append
    """
    logger.info(
        "Artifact enqueued",
        extra={
            "event": "artifact_enqueued",
            "artifact_id": artifact_id,
            "queue_size": queue_size,
        },
    )


def log_upload_success(
    logger: logging.Logger,
    artifact_id: str,
    server_response_time_ms: float,
    remote_id: str | None = None,
) -> None:
    """Log a successful upload.

    Args:
        logger: Logger instance
        artifact_id: Queue-assigned artifact identifier
        server_response_time_ms: Round trip time in milliseconds
        remote_id: Identifier the server assigned, if it returned one
    """
    extra = {
        "event": "upload_success",
        "artifact_id": artifact_id,
        "server_response_time_ms": server_response_time_ms,
    }
    if remote_id:
        extra["remote_id"] = remote_id
    logger.info("Upload successful", extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    artifact_id: str,
    error: str,
    attempt_count: int,
) -> None:
    """Log a failed upload attempt that will be retried.

    Args:
        logger: Logger instance
        artifact_id: Queue-assigned artifact identifier
        error: Error message (sanitized - no payload data)
        attempt_count: Which attempt this was
    """
    logger.warning(
        "Upload failed",
        extra={
            "event": "upload_failed",
            "artifact_id": artifact_id,
            "error": error,
            "attempt_count": attempt_count,
        },
    )


def log_artifact_dropped(
    logger: logging.Logger,
    artifact_id: str,
    attempt_count: int,
    error: str | None = None,
    attributes: dict | None = None,
) -> None:
    """Log the permanent removal of an artifact after its last allowed attempt.

    This is the only path that discards submitted work, so it is logged at
    ERROR level with the owner attributes for later audit.

    Args:
        logger: Logger instance
        artifact_id: Queue-assigned artifact identifier
        attempt_count: Number of delivery attempts made
        error: Error from the final attempt
        attributes: Owner attributes attached at enqueue time
    """
    extra = {
        "event": "artifact_dropped",
        "artifact_id": artifact_id,
        "attempt_count": attempt_count,
    }
    if error:
        extra["error"] = error
    if attributes:
        extra["attributes"] = attributes
    logger.error("Artifact dropped after max retries", extra=extra)


def log_state_change(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a state transition.

    Args:
        logger: Logger instance
        old_state: Previous state
        new_state: New state
        trigger: What triggered the change
    """
    extra = {
        "event": "state_change",
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.debug("State changed", extra=extra)


def log_connectivity_change(logger: logging.Logger, online: bool) -> None:
    """Log an online/offline transition."""
    logger.info(
        "Connectivity changed",
        extra={
            "event": "connectivity_change",
            "online": online,
        },
    )


def log_persist_failed(logger: logging.Logger, error: str, queue_size: int) -> None:
    """Log a failed write of the queue state.

    Args:
        logger: Logger instance
        error: Error reported by the store
        queue_size: In-memory queue size that could not be written
    """
    logger.error(
        "Queue persist failed",
        extra={
            "event": "persist_failed",
            "error": error,
            "queue_size": queue_size,
        },
    )

