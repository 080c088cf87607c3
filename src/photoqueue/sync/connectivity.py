"""Online/offline tracking for the sync loop."""

import asyncio
import logging
from typing import Awaitable, Callable

from photoqueue.logging import log_connectivity_change

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether the upload endpoint is reachable.

    Holds the current online flag and notifies registered callbacks on
    transitions only; repeated reports of the same state are ignored.
    State is driven externally through set_online(), which makes this
    class usable directly for OS-event integrations and in tests.

    Callbacks run on the caller's thread. When a SyncLoop is listening,
    set_online() must be called from the event loop thread.
    """

    def __init__(self, online: bool = False) -> None:
        self._online = online
        self._callbacks: list[Callable[[bool], None]] = []

    @property
    def is_online(self) -> bool:
        """Current connectivity state."""
        return self._online

    def on_change(self, callback: Callable[[bool], None]) -> None:
        """Register callback for connectivity transitions.

        Args:
            callback: Function called with the new online state
        """
        self._callbacks.append(callback)

    def set_online(self, online: bool) -> None:
        """Record the current state and notify on a transition."""
        if online == self._online:
            return

        self._online = online
        log_connectivity_change(logger, online)
        for callback in list(self._callbacks):
            try:
                callback(online)
            except Exception:
                logger.exception("Connectivity callback failed")

    async def start(self) -> None:
        """Start monitoring. Externally driven monitors have nothing to start."""

    async def stop(self) -> None:
        """Stop monitoring."""


class PollingConnectivityMonitor(ConnectivityMonitor):
    """Connectivity monitor that polls a health probe on a fixed interval.

    The poll interval should not exceed the sync interval so that a
    reconnect reaches the sync loop within one tick.

    Example:
        monitor = PollingConnectivityMonitor(transport.check_server, poll_interval=2.0)
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]],
        poll_interval: float = 2.0,
        online: bool = False,
    ) -> None:
        """Initialize the monitor.

        Args:
            probe: Coroutine function returning True when the endpoint is reachable
            poll_interval: Seconds between probes
            online: Initial state before the first probe
        """
        super().__init__(online=online)
        self._probe = probe
        self.poll_interval = poll_interval
        self._task: asyncio.Task | None = None

    async def check(self) -> bool:
        """Run the probe once and record the result.

        A probe that raises counts as offline.
        """
        try:
            online = bool(await self._probe())
        except Exception as e:
            logger.debug("Connectivity probe failed: %s", e)
            online = False

        self.set_online(online)
        return online

    async def start(self) -> None:
        """Probe once, then keep polling in a background task."""
        if self._task is not None and not self._task.done():
            return

        await self.check()
        self._task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.check()

    async def stop(self) -> None:
        """Stop the polling task."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
