"""
PathWatch Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

import queue
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from pathwatch.backend import ClosedWatchServiceError, RawEvent
from pathwatch.dispatch import DispatchLoop
from pathwatch.events import FileEvent
from pathwatch.registry import WatchRegistry
from pathwatch.table import ListenerTable


class FakeHandle:
    """Watch handle that records what was done to it."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.cancel_calls = 0
        self.rearm_calls = 0
        self.rearm_result = True
        self.rearm_error: Exception | None = None

    @property
    def is_valid(self) -> bool:
        return self.cancel_calls == 0

    def cancel(self) -> None:
        self.cancel_calls += 1

    def rearm(self) -> bool:
        self.rearm_calls += 1
        if self.rearm_error is not None:
            raise self.rearm_error
        return self.rearm_result and self.is_valid


class FakeBackend:
    """In-memory watch backend; batches are delivered by the test."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.closed = False
        self._batches: queue.SimpleQueue[tuple[FakeHandle, list[RawEvent]] | None] = (
            queue.SimpleQueue()
        )

    def register(self, directory: Path) -> FakeHandle:
        if self.closed:
            raise ClosedWatchServiceError("closed")
        if not directory.is_dir():
            raise FileNotFoundError(2, "No such directory", str(directory))
        handle = FakeHandle(directory)
        self.handles.append(handle)
        return handle

    def live_handles(self, directory: Path | None = None) -> list[FakeHandle]:
        return [
            h
            for h in self.handles
            if h.is_valid and (directory is None or h.directory == directory)
        ]

    def deliver(self, handle: FakeHandle, events: list[RawEvent]) -> None:
        self._batches.put((handle, list(events)))

    def take_batch(self) -> tuple[FakeHandle, list[RawEvent]]:
        item = self._batches.get()
        if item is None:
            self._batches.put(None)
            raise ClosedWatchServiceError("closed")
        return item

    def close(self) -> None:
        self.closed = True
        self._batches.put(None)


class EventRecorder:
    """Listener that records events and lets tests wait for them."""

    def __init__(self) -> None:
        self.events: list[FileEvent] = []
        self.threads: list[str] = []
        self._cond = threading.Condition()

    def __call__(self, event: FileEvent) -> None:
        with self._cond:
            self.events.append(event)
            self.threads.append(threading.current_thread().name)
            self._cond.notify_all()

    def wait_for(self, count: int = 1, timeout: float = 5.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.events) >= count, timeout)

    @property
    def paths(self) -> list[Path]:
        return [event.path for event in self.events]


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Create a fake watch backend."""
    return FakeBackend()


@pytest.fixture
def registry(fake_backend: FakeBackend) -> WatchRegistry:
    """Create a registry on the fake backend."""
    return WatchRegistry(fake_backend)


@pytest.fixture
def table(registry: WatchRegistry) -> ListenerTable:
    """Create a listener table sharing the registry's lock."""
    return ListenerTable(registry)


@pytest.fixture
def loop(
    fake_backend: FakeBackend, registry: WatchRegistry, table: ListenerTable
) -> Generator[DispatchLoop, None, None]:
    """Create a dispatch loop (not started) that is stopped on teardown."""
    dispatch_loop = DispatchLoop(fake_backend, registry, table)
    yield dispatch_loop
    dispatch_loop.stop(timeout=5.0)


@pytest.fixture
def make_recorder():
    """Factory for event recorders."""
    return EventRecorder


@pytest.fixture
def watched_dir(tmp_path: Path) -> Path:
    """A directory with a couple of existing files."""
    directory = tmp_path / "watched"
    directory.mkdir()
    (directory / "a.txt").write_text("a")
    (directory / "b.txt").write_text("b")
    return directory
