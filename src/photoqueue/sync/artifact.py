"""Queued artifact model and its persisted record format."""

import base64
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class QueuedArtifact:
    """A captured artifact waiting in the upload queue.

    The payload is opaque: the queue stores and forwards it without
    inspecting it. Instances are immutable; a retry produces a new
    instance with the incremented count.
    """

    id: str
    payload: bytes | str
    enqueued_at: datetime
    attributes: dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0

    def with_retry_count(self, retry_count: int) -> "QueuedArtifact":
        """Return a copy carrying a different retry count."""
        return replace(self, retry_count=retry_count)

    def to_record(self) -> dict[str, Any]:
        """Convert to a JSON-compatible record for storage."""
        if isinstance(self.payload, bytes):
            payload = base64.b64encode(self.payload).decode("ascii")
            encoding = "base64"
        else:
            payload = self.payload
            encoding = "text"

        return {
            "id": self.id,
            "payload": payload,
            "payload_encoding": encoding,
            "attributes": self.attributes,
            "enqueued_at": self.enqueued_at.isoformat(),
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "QueuedArtifact":
        """Create from a stored record.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        artifact_id = record["id"]
        if not isinstance(artifact_id, str) or not artifact_id:
            raise ValueError("artifact id must be a non-empty string")

        encoding = record["payload_encoding"]
        raw_payload = record["payload"]
        if not isinstance(raw_payload, str):
            raise TypeError("payload must be stored as a string")
        if encoding == "base64":
            payload: bytes | str = base64.b64decode(raw_payload, validate=True)
        elif encoding == "text":
            payload = raw_payload
        else:
            raise ValueError(f"unknown payload encoding: {encoding!r}")

        attributes = record["attributes"]
        if not isinstance(attributes, dict):
            raise TypeError("attributes must be a mapping")

        retry_count = record["retry_count"]
        if isinstance(retry_count, bool) or not isinstance(retry_count, int) or retry_count < 0:
            raise ValueError("retry_count must be a non-negative integer")

        # Records written without an offset are taken as UTC
        enqueued_at = datetime.fromisoformat(record["enqueued_at"])
        if enqueued_at.tzinfo is None:
            enqueued_at = enqueued_at.replace(tzinfo=timezone.utc)

        return cls(
            id=artifact_id,
            payload=payload,
            enqueued_at=enqueued_at,
            attributes=attributes,
            retry_count=retry_count,
        )
