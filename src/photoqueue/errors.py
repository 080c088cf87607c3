"""Exceptions raised by the upload queue."""


class PhotoQueueError(Exception):
    """Base class for photoqueue errors."""


class PersistenceError(PhotoQueueError):
    """Raised when the queue state could not be written to its store.

    The in-memory mutation that triggered the write has already been
    applied; the next successful persist writes the full state again.
    """

    def __init__(self, message: str, artifact_id: str | None = None) -> None:
        super().__init__(message)
        self.artifact_id = artifact_id
