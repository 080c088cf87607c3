"""Shared fixtures and fakes for photoqueue tests."""

import asyncio
import time
from typing import Callable, Sequence

import pytest

from photoqueue.config import Settings, get_settings
from photoqueue.errors import PersistenceError
from photoqueue.sync import (
    ConnectivityMonitor,
    MemoryStore,
    QueuedArtifact,
    UploadQueue,
    UploadResult,
)


class FakeTransport:
    """Scripted transport recording every send.

    outcomes holds one entry per attempt: True/False for success/failure,
    or an exception instance to raise. Attempts past the script succeed.
    When gate is set, each send waits on it before completing.
    """

    def __init__(
        self,
        outcomes: Sequence[bool | Exception] = (),
        gate: asyncio.Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.outcomes = list(outcomes)
        self.gate = gate
        self.delay = delay
        self.sent: list[QueuedArtifact] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    @property
    def sent_ids(self) -> list[str]:
        return [artifact.id for artifact in self.sent]

    async def send(self, artifact: QueuedArtifact) -> UploadResult:
        self.sent.append(artifact)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)

            outcome = self.outcomes.pop(0) if self.outcomes else True
            if isinstance(outcome, Exception):
                raise outcome
            if outcome:
                return UploadResult(success=True, remote_id=f"remote-{artifact.id}")
            return UploadResult(success=False, error="Server error: 503", status_code=503)
        finally:
            self.in_flight -= 1

    async def check_server(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class FlakyStore(MemoryStore):
    """Memory store whose saves fail while fail_saves is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_saves = False
        self.save_count = 0

    def save(self, artifacts) -> None:
        self.save_count += 1
        if self.fail_saves:
            raise PersistenceError("disk full")
        super().save(artifacts)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until true, failing the test after timeout seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.005)


def reload(queue: UploadQueue, store: MemoryStore) -> list[QueuedArtifact]:
    """Simulate a restart by building a fresh queue from the store."""
    return UploadQueue(store, max_retries=queue.max_retries).snapshot()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test reads settings fresh from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def queue(store) -> UploadQueue:
    return UploadQueue(store, max_retries=3)


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        attributes_file=tmp_path / "attributes.yaml",
        sync_interval_ms=20,
        connectivity_poll_interval=0.01,
        upload_timeout=1.0,
    )
