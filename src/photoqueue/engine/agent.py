"""Upload agent wiring queue, store, transport, connectivity and sync loop."""

import logging
from typing import Any, Callable

from photoqueue.config import Settings
from photoqueue.errors import PersistenceError
from photoqueue.sync import (
    ConnectivityMonitor,
    HttpUploadTransport,
    PersistentStore,
    PollingConnectivityMonitor,
    QueuedArtifact,
    SqliteStore,
    SyncLoop,
    SyncState,
    UploadQueue,
    UploadTransport,
)

logger = logging.getLogger(__name__)


class UploadAgent:
    """High-level entry point for the upload system.

    Builds the store, queue, transport, connectivity monitor and sync loop
    from settings, and exposes the operations a capture screen needs:
    submit an artifact, read the pending count and syncing flag, retry
    everything, or force an immediate sync. Any collaborator can be
    injected instead of built from settings.

    Example:
        agent = UploadAgent(settings)
        await agent.start()
        artifact_id = agent.submit(jpeg_bytes, {"user_id": "u1", "store_id": "s9"})
        ...
        await agent.stop()
    """

    def __init__(
        self,
        config: Settings,
        store: PersistentStore | None = None,
        transport: UploadTransport | None = None,
        monitor: ConnectivityMonitor | None = None,
    ) -> None:
        """Initialize the upload agent.

        Args:
            config: Settings instance with all configuration
            store: Queue persistence; defaults to SqliteStore in data_dir
            transport: Upload transport; defaults to HttpUploadTransport
            monitor: Connectivity monitor; defaults to polling the
                transport's check_server()
        """
        self.config = config

        self._store = store if store is not None else SqliteStore(config.queue_db_path)
        self._transport = transport if transport is not None else HttpUploadTransport(
            server_url=config.server_url,
            timeout=config.upload_timeout,
        )

        if monitor is None:
            probe = getattr(self._transport, "check_server", None)
            if probe is None:
                raise ValueError("monitor is required when the transport has no check_server()")
            monitor = PollingConnectivityMonitor(
                probe,
                poll_interval=config.connectivity_poll_interval,
            )
        self._monitor = monitor

        self._queue = UploadQueue(self._store, max_retries=config.max_retries)
        self._sync_loop = SyncLoop(
            self._queue,
            self._transport,
            self._monitor,
            interval=config.sync_interval,
            attempt_timeout=config.upload_timeout,
        )

        self._sync_loop.on_state_change(self._handle_state_change)

        self._running = False

    @property
    def queue(self) -> UploadQueue:
        return self._queue

    @property
    def pending_count(self) -> int:
        """Number of artifacts waiting for delivery."""
        return self._queue.size()

    @property
    def is_syncing(self) -> bool:
        """True while a delivery attempt is outstanding."""
        return self._queue.is_syncing

    @property
    def is_online(self) -> bool:
        return self._monitor.is_online

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start connectivity monitoring and the sync loop.

        Returns once both are running; delivery continues in the background.
        """
        if self._running:
            return

        self._running = True
        logger.info(
            "Starting upload agent: pending=%d, max_retries=%d, sync_interval=%.1fs",
            self._queue.size(),
            self.config.max_retries,
            self.config.sync_interval,
        )

        await self._monitor.start()
        self._sync_loop.start()

    def submit(self, payload: bytes | str, attributes: dict[str, Any] | None = None) -> str:
        """Queue a captured artifact for upload.

        Returns immediately; delivery happens on the sync loop's schedule.

        Args:
            payload: Captured content
            attributes: Owner metadata (originating user, location, ...)

        Returns:
            Artifact ID for UI correlation
        """
        return self._queue.enqueue(payload, attributes)

    def retry_all(self) -> int:
        """Reset retry counts on every queued artifact."""
        return self._queue.reset_retries()

    def force_sync(self) -> None:
        """Trigger an attempt now rather than at the next timer tick."""
        logger.debug("Force sync requested")
        self._sync_loop.wake("manual")

    def snapshot(self) -> list[QueuedArtifact]:
        """Queued artifacts in delivery order, for status display."""
        return self._queue.snapshot()

    def on_drop(self, callback: Callable[[QueuedArtifact, str | None], None]) -> None:
        """Register callback for artifacts dropped after max retries."""
        self._queue.on_drop(callback)

    def _handle_state_change(self, new_state: SyncState) -> None:
        logger.debug("Sync state changed: state=%s", new_state.value)

    async def stop(self) -> None:
        """Stop the agent gracefully.

        Waits for an outstanding attempt, stops the monitor, closes resources.
        """
        if not self._running:
            return

        self._running = False

        await self._sync_loop.stop()
        await self._monitor.stop()

        close_transport = getattr(self._transport, "close", None)
        if close_transport is not None:
            await close_transport()

        if self._queue.is_dirty:
            try:
                self._queue.flush()
            except PersistenceError as e:
                logger.error("Final queue flush failed: %s", e)

        close_store = getattr(self._store, "close", None)
        if close_store is not None:
            close_store()

        logger.info("Upload agent stopped, pending=%d", self._queue.size())

    def get_status(self) -> dict[str, Any]:
        """Get current agent status.

        Returns:
            Dictionary with connectivity, sync state and queue stats
        """
        stats = self._queue.get_stats()

        return {
            "running": self._running,
            "online": self._monitor.is_online,
            "syncing": self._queue.is_syncing,
            "sync_state": self._sync_loop.state.value,
            "pending": stats["pending"],
            "queue": stats,
            "items": [
                {
                    "id": artifact.id,
                    "enqueued_at": artifact.enqueued_at.isoformat(),
                    "retry_count": artifact.retry_count,
                    "in_flight": artifact.id == self._queue.in_flight_id,
                }
                for artifact in self._queue.snapshot()
            ],
            "data_dir": str(self.config.data_path),
        }
