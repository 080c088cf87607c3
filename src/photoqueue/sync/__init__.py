"""Sync module for the offline upload queue and its delivery loop."""

from photoqueue.sync.artifact import QueuedArtifact
from photoqueue.sync.connectivity import ConnectivityMonitor, PollingConnectivityMonitor
from photoqueue.sync.loop import SyncLoop, SyncState
from photoqueue.sync.queue import FailureOutcome, UploadQueue
from photoqueue.sync.store import MemoryStore, PersistentStore, SqliteStore
from photoqueue.sync.transport import HttpUploadTransport, UploadResult, UploadTransport

__all__ = [
    "ConnectivityMonitor",
    "FailureOutcome",
    "HttpUploadTransport",
    "MemoryStore",
    "PersistentStore",
    "PollingConnectivityMonitor",
    "QueuedArtifact",
    "SqliteStore",
    "SyncLoop",
    "SyncState",
    "UploadQueue",
    "UploadResult",
    "UploadTransport",
]
