"""Sync loop driving one delivery attempt at a time."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable

from photoqueue.errors import PersistenceError
from photoqueue.logging import log_state_change, log_upload_failed, log_upload_success
from photoqueue.sync.artifact import QueuedArtifact
from photoqueue.sync.connectivity import ConnectivityMonitor
from photoqueue.sync.queue import FailureOutcome, UploadQueue
from photoqueue.sync.transport import UploadResult, UploadTransport

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """State of the sync loop."""

    IDLE = "idle"
    ATTEMPTING = "attempting"


class SyncLoop:
    """Scheduler that delivers queued artifacts through the transport.

    Two triggers start an attempt: a periodic timer and an offline-to-online
    transition reported by the connectivity monitor. A trigger is a no-op
    while an attempt is outstanding, while offline, or when the queue is
    empty. Otherwise the head artifact is claimed and sent, and the outcome
    is reported back to the queue before the loop returns to IDLE.

    An attempt that is already dispatched is never cancelled; stop() waits
    for its outcome. The transport call is bounded by attempt_timeout, and a
    timeout counts as a failed attempt.

    Example:
        loop = SyncLoop(queue, transport, monitor, interval=5.0)
        loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        queue: UploadQueue,
        transport: UploadTransport,
        monitor: ConnectivityMonitor,
        interval: float = 5.0,
        attempt_timeout: float = 30.0,
    ) -> None:
        """Initialize the sync loop.

        Args:
            queue: Queue to drain
            transport: Transport used for each attempt
            monitor: Connectivity monitor gating attempts
            interval: Seconds between timer ticks
            attempt_timeout: Seconds before an attempt counts as failed
        """
        self._queue = queue
        self._transport = transport
        self._monitor = monitor
        self.interval = interval
        self.attempt_timeout = attempt_timeout

        self._state = SyncState.IDLE
        self._running = False
        self._task: asyncio.Task | None = None
        self._wake_event = asyncio.Event()
        self._wake_trigger = "timer"
        self._attempt_count = 0

        self._state_change_callbacks: list[Callable[[SyncState], None]] = []

        monitor.on_change(self._handle_connectivity_change)

    @property
    def state(self) -> SyncState:
        """Get current loop state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def attempt_count(self) -> int:
        """Number of delivery attempts dispatched since creation."""
        return self._attempt_count

    def on_state_change(self, callback: Callable[[SyncState], None]) -> None:
        """Register callback for state changes.

        Args:
            callback: Function called with new SyncState on state change
        """
        self._state_change_callbacks.append(callback)

    def _set_state(self, new_state: SyncState, trigger: str | None = None) -> None:
        """Set state and notify callbacks."""
        if self._state == new_state:
            return

        old_state = self._state
        self._state = new_state
        log_state_change(logger, old_state.value, new_state.value, trigger)
        for callback in self._state_change_callbacks:
            try:
                callback(new_state)
            except Exception:
                logger.exception("State change callback failed")

    def _handle_connectivity_change(self, online: bool) -> None:
        if online:
            self.wake("reconnect")

    def wake(self, trigger: str = "manual") -> None:
        """Request an attempt now instead of at the next timer tick.

        Ignored while an attempt is outstanding.
        """
        if self._state is SyncState.ATTEMPTING:
            logger.debug("Wake ignored, attempt in flight: trigger=%s", trigger)
            return
        self._wake_trigger = trigger
        self._wake_event.set()

    async def tick(self, trigger: str = "timer") -> bool:
        """Run one scheduling step.

        Args:
            trigger: What caused this step, for logging

        Returns:
            True if a delivery attempt was made
        """
        if self._state is SyncState.ATTEMPTING:
            logger.debug("Tick ignored, attempt in flight: trigger=%s", trigger)
            return False

        if not self._monitor.is_online:
            return False

        artifact = self._queue.claim_next()
        if artifact is None:
            return False

        self._set_state(SyncState.ATTEMPTING, trigger)
        try:
            await self._attempt(artifact)
        finally:
            self._set_state(SyncState.IDLE, trigger)
        return True

    async def _attempt(self, artifact: QueuedArtifact) -> None:
        """Send one artifact and report its outcome to the queue."""
        self._attempt_count += 1
        started = time.monotonic()

        try:
            result = await asyncio.wait_for(
                self._transport.send(artifact),
                timeout=self.attempt_timeout,
            )
        except asyncio.TimeoutError:
            result = UploadResult(
                success=False,
                error=f"Timed out after {self.attempt_timeout}s",
            )
        except asyncio.CancelledError:
            self._queue.release(artifact.id)
            raise
        except Exception as e:
            logger.error("Transport raised during send: id=%s, error=%s", artifact.id, e)
            result = UploadResult(success=False, error=f"Transport error: {e}")

        elapsed_ms = (time.monotonic() - started) * 1000.0

        try:
            if result.success:
                self._queue.report_success(artifact.id)
                log_upload_success(logger, artifact.id, elapsed_ms, result.remote_id)
                return

            error = result.error or "Unknown error"
            outcome = self._queue.report_failure(artifact.id, error)
            if outcome is FailureOutcome.REQUEUED:
                log_upload_failed(logger, artifact.id, error, artifact.retry_count + 1)
        except PersistenceError as e:
            # The queue keeps the outcome in memory and retries the write on
            # its next mutation
            logger.error("Attempt outcome not persisted: id=%s, error=%s", artifact.id, e)

    async def _wait_for_trigger(self) -> str:
        """Sleep until the next timer tick or an explicit wake."""
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return "timer"

        self._wake_event.clear()
        return self._wake_trigger

    async def run(self) -> None:
        """Run the loop until stop() is called."""
        self._running = True
        trigger = "startup"

        while self._running:
            try:
                await self.tick(trigger)
            except Exception as e:
                logger.error("Sync loop error: %s", e, exc_info=True)

            if not self._running:
                break
            trigger = await self._wait_for_trigger()

    def start(self) -> asyncio.Task:
        """Start the loop in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the loop, waiting for any outstanding attempt to finish."""
        self._running = False
        self._wake_event.set()

        if self._task is not None:
            await self._task
            self._task = None
