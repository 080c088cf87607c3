"""Durable single-slot persistence for the upload queue.

The whole queue is serialized as one JSON array and written to a single
named slot, so every save replaces the previous state in one step and a
reader never sees a partial write.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, Sequence

from photoqueue.errors import PersistenceError
from photoqueue.sync.artifact import QueuedArtifact

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "photo-queue"


class PersistentStore(Protocol):
    """Protocol for queue state persistence.

    load() never raises on bad content: unreadable state is treated as an
    empty queue. save() raises PersistenceError when the write fails.
    """

    def load(self) -> list[QueuedArtifact]:
        """Return the persisted queue in delivery order."""
        ...

    def save(self, artifacts: Sequence[QueuedArtifact]) -> None:
        """Replace the persisted queue with the given sequence."""
        ...


def serialize_queue(artifacts: Sequence[QueuedArtifact]) -> str:
    """Serialize an ordered queue to its stored JSON form."""
    return json.dumps([artifact.to_record() for artifact in artifacts])


def deserialize_queue(state_json: str | None) -> list[QueuedArtifact]:
    """Parse stored JSON back into an ordered queue.

    Missing or malformed state yields an empty queue. Duplicate ids keep
    their first occurrence.
    """
    if not state_json:
        return []

    try:
        records = json.loads(state_json)
        if not isinstance(records, list):
            raise ValueError("queue state is not a list")
        artifacts = [QueuedArtifact.from_record(record) for record in records]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning("Discarding unreadable queue state: %s", e)
        return []

    seen: set[str] = set()
    unique = []
    for artifact in artifacts:
        if artifact.id in seen:
            logger.warning("Duplicate artifact in stored queue, keeping first: id=%s", artifact.id)
            continue
        seen.add(artifact.id)
        unique.append(artifact)
    return unique


class SqliteStore:
    """SQLite-backed store holding the queue in one named row.

    The queue survives agent restarts. Each save is a single-row
    replace inside a transaction.
    """

    def __init__(self, db_path: Path, slot: str = DEFAULT_SLOT) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file
            slot: Name of the row holding the serialized queue
        """
        self.db_path = db_path
        self.slot = slot
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._create_table()

    def _create_table(self) -> None:
        """Create the state table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS queue_state (
                slot TEXT PRIMARY KEY,
                state_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def load(self) -> list[QueuedArtifact]:
        """Load the persisted queue.

        Returns:
            Artifacts in delivery order, or an empty list when there is no
            prior state or it cannot be read
        """
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "SELECT state_json FROM queue_state WHERE slot = ?",
                    (self.slot,),
                )
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning("Failed to read queue state from %s: %s", self.db_path, e)
            return []

        return deserialize_queue(row["state_json"] if row else None)

    def save(self, artifacts: Sequence[QueuedArtifact]) -> None:
        """Replace the persisted queue.

        Args:
            artifacts: Full queue in delivery order

        Raises:
            PersistenceError: If the state could not be serialized or written
        """
        try:
            state_json = serialize_queue(artifacts)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to serialize queue state: {e}") from e

        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO queue_state (slot, state_json, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (self.slot, state_json, now),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write queue state to {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


class MemoryStore:
    """Process-local store keeping the serialized queue in memory.

    Uses the same JSON form as SqliteStore, so a reload goes through the
    full serialize/parse path.
    """

    def __init__(self, state_json: str | None = None) -> None:
        self.state_json = state_json

    def load(self) -> list[QueuedArtifact]:
        return deserialize_queue(self.state_json)

    def save(self, artifacts: Sequence[QueuedArtifact]) -> None:
        try:
            self.state_json = serialize_queue(artifacts)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to serialize queue state: {e}") from e

    def close(self) -> None:
        pass
