"""Persistent FIFO upload queue with per-artifact retry and drop."""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from photoqueue.errors import PersistenceError
from photoqueue.logging import (
    log_artifact_dropped,
    log_artifact_enqueued,
    log_persist_failed,
)
from photoqueue.sync.artifact import QueuedArtifact
from photoqueue.sync.store import PersistentStore

logger = logging.getLogger(__name__)


class FailureOutcome(Enum):
    """What happened to an artifact after a failed attempt."""

    REQUEUED = "requeued"  # moved to the tail with retry_count + 1
    DROPPED = "dropped"  # retry ceiling reached, removed permanently
    MISSING = "missing"  # no artifact with that id


class UploadQueue:
    """Persistent queue of artifacts awaiting upload.

    Artifacts are delivered in insertion order. A failed artifact moves to
    the tail with an incremented retry count so newer artifacts get a turn
    before it is retried; once retry_count + 1 reaches max_retries it is
    dropped instead.

    Every mutation writes the full queue to the store before returning, so
    a restart reloads exactly the last state a caller observed. All state
    access goes through one lock, which makes enqueue safe to call from a
    capture thread while the sync loop runs.

    Example:
        queue = UploadQueue(SqliteStore(path), max_retries=3)
        artifact_id = queue.enqueue(jpeg_bytes, {"user_id": "u1"})
        head = queue.claim_next()
        queue.report_success(head.id)
    """

    DEFAULT_MAX_RETRIES = 3

    def __init__(self, store: PersistentStore, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        """Initialize the queue from the store's persisted state.

        Args:
            store: Persistence backend
            max_retries: Delivery attempts allowed before an artifact is dropped
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.max_retries = max_retries
        self._store = store
        self._lock = threading.RLock()
        self._items: list[QueuedArtifact] = store.load()
        self._in_flight_id: str | None = None
        self._dirty = False
        self._drop_callbacks: list[Callable[[QueuedArtifact, str | None], None]] = []

        # Counters since this instance was created
        self._delivered = 0
        self._dropped = 0
        self._failed_attempts = 0

        # max_retries may have been lowered since the state was written;
        # such artifacts keep one final attempt
        ceiling = max_retries - 1
        clamped = sum(1 for artifact in self._items if artifact.retry_count > ceiling)
        if clamped:
            self._items = [
                artifact.with_retry_count(ceiling) if artifact.retry_count > ceiling else artifact
                for artifact in self._items
            ]
            logger.info("Clamped retry counts to max_retries: artifacts=%d", clamped)

        if self._items:
            logger.info("Restored upload queue: size=%d", len(self._items))

    # --- Observation ---

    def size(self) -> int:
        """Number of artifacts awaiting delivery."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()

    @property
    def is_syncing(self) -> bool:
        """True while a delivery attempt for the head artifact is outstanding."""
        with self._lock:
            return self._in_flight_id is not None

    @property
    def in_flight_id(self) -> str | None:
        with self._lock:
            return self._in_flight_id

    @property
    def is_dirty(self) -> bool:
        """True when the last persist failed and the store is behind."""
        with self._lock:
            return self._dirty

    def snapshot(self) -> list[QueuedArtifact]:
        """Return the queued artifacts in delivery order."""
        with self._lock:
            return list(self._items)

    def get_stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with the pending count, in-flight flag, and counters
            for deliveries, failed attempts and drops since startup
        """
        with self._lock:
            return {
                "pending": len(self._items),
                "syncing": 1 if self._in_flight_id else 0,
                "delivered": self._delivered,
                "failed_attempts": self._failed_attempts,
                "dropped": self._dropped,
            }

    def on_drop(self, callback: Callable[[QueuedArtifact, str | None], None]) -> None:
        """Register callback for dropped artifacts.

        Args:
            callback: Function called with the dropped artifact and the
                error from its final attempt
        """
        self._drop_callbacks.append(callback)

    # --- Mutation ---

    def enqueue(self, payload: bytes | str, attributes: dict[str, Any] | None = None) -> str:
        """Add an artifact to the tail of the queue.

        Never touches the network and does not change when the next
        delivery attempt happens.

        Args:
            payload: Captured content, stored and forwarded unchanged
            attributes: JSON-compatible owner metadata passed to the transport

        Returns:
            Queue-assigned artifact ID (UUID)

        Raises:
            TypeError: If the payload is not bytes or str
            ValueError: If the attributes are not JSON-serializable
            PersistenceError: If the queue could not be written; the artifact
                stays queued in memory and the error carries its id
        """
        if isinstance(payload, bytearray):
            payload = bytes(payload)
        if not isinstance(payload, (bytes, str)):
            raise TypeError(f"payload must be bytes or str, not {type(payload).__name__}")

        # Round trip so the in-memory copy matches what a reload returns
        try:
            attributes = json.loads(json.dumps(attributes or {}))
        except (TypeError, ValueError) as e:
            raise ValueError(f"attributes must be JSON-serializable: {e}") from e

        with self._lock:
            artifact = QueuedArtifact(
                id=str(uuid.uuid4()),
                payload=payload,
                enqueued_at=datetime.now(timezone.utc),
                attributes=attributes,
            )
            self._items.append(artifact)
            try:
                self._persist()
            except PersistenceError as e:
                e.artifact_id = artifact.id
                raise
            size = len(self._items)

        log_artifact_enqueued(logger, artifact.id, size)
        return artifact.id

    def peek_next(self) -> QueuedArtifact | None:
        """Return the head of the queue without removing it."""
        with self._lock:
            return self._items[0] if self._items else None

    def claim_next(self) -> QueuedArtifact | None:
        """Mark the head artifact in flight and return it.

        The emptiness check and the claim happen under one lock hold.

        Returns:
            The head artifact, or None if the queue is empty or an attempt
            is already outstanding
        """
        with self._lock:
            if self._in_flight_id is not None or not self._items:
                return None
            head = self._items[0]
            self._in_flight_id = head.id
            return head

    def release(self, artifact_id: str) -> None:
        """Clear the in-flight mark without reporting an outcome."""
        with self._lock:
            if self._in_flight_id == artifact_id:
                self._in_flight_id = None

    def report_success(self, artifact_id: str) -> bool:
        """Remove an artifact after successful delivery.

        Args:
            artifact_id: Artifact ID

        Returns:
            True if the artifact was removed, False if it was not queued
        """
        with self._lock:
            self.release(artifact_id)
            index = self._index_of(artifact_id)
            if index is None:
                logger.info("Success reported for unknown artifact, ignoring: id=%s", artifact_id)
                return False

            del self._items[index]
            self._delivered += 1
            self._persist()
            return True

    def report_failure(self, artifact_id: str, error: str | None = None) -> FailureOutcome:
        """Requeue an artifact at the tail or drop it after a failed attempt.

        Args:
            artifact_id: Artifact ID
            error: Error from the failed attempt

        Returns:
            FailureOutcome describing what happened to the artifact
        """
        with self._lock:
            self.release(artifact_id)
            index = self._index_of(artifact_id)
            if index is None:
                logger.info("Failure reported for unknown artifact, ignoring: id=%s", artifact_id)
                return FailureOutcome.MISSING

            artifact = self._items.pop(index)
            self._failed_attempts += 1
            attempts = artifact.retry_count + 1

            if attempts < self.max_retries:
                self._items.append(artifact.with_retry_count(attempts))
                self._persist()
                return FailureOutcome.REQUEUED

            self._dropped += 1
            try:
                self._persist()
            finally:
                self._emit_drop(artifact, attempts, error)
            return FailureOutcome.DROPPED

    def reset_retries(self) -> int:
        """Give every queued artifact a fresh set of attempts.

        Order is preserved. Dropped artifacts are gone and stay gone.

        Returns:
            Number of artifacts whose retry count was reset
        """
        with self._lock:
            reset = sum(1 for artifact in self._items if artifact.retry_count)
            self._items = [
                artifact.with_retry_count(0) if artifact.retry_count else artifact
                for artifact in self._items
            ]
            self._persist()

        logger.info("Retry counts reset: artifacts=%d", reset)
        return reset

    def flush(self) -> None:
        """Write the current state to the store.

        Used to catch the store up after a PersistenceError without
        waiting for the next mutation.
        """
        with self._lock:
            self._persist()

    # --- Internals ---

    def _index_of(self, artifact_id: str) -> int | None:
        for index, artifact in enumerate(self._items):
            if artifact.id == artifact_id:
                return index
        return None

    def _persist(self) -> None:
        """Write the full queue. Caller holds the lock."""
        try:
            self._store.save(tuple(self._items))
        except PersistenceError as e:
            self._dirty = True
            log_persist_failed(logger, str(e), len(self._items))
            raise
        except OSError as e:
            self._dirty = True
            log_persist_failed(logger, str(e), len(self._items))
            raise PersistenceError(f"Failed to write queue state: {e}") from e
        self._dirty = False

    def _emit_drop(self, artifact: QueuedArtifact, attempts: int, error: str | None) -> None:
        log_artifact_dropped(
            logger,
            artifact.id,
            attempt_count=attempts,
            error=error,
            attributes=artifact.attributes,
        )
        for callback in list(self._drop_callbacks):
            try:
                callback(artifact, error)
            except Exception:
                logger.exception("Drop callback failed: id=%s", artifact.id)
