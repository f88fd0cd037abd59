"""
Tests for Watchdog Watch Backend.

Requires Python 3.11+.
"""

import threading
from collections.abc import Generator
from pathlib import Path

import pytest
from watchdog.events import (
    DirDeletedEvent,
    DirModifiedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from pathwatch.backend import (
    EVENT_TYPE_OVERFLOW,
    MAX_PENDING_EVENTS,
    ClosedWatchServiceError,
    DirectoryWatch,
    WatchdogBackend,
    _DirectoryEventHandler,
    translate_event,
)
from pathwatch.dispatch import DispatchLoop
from pathwatch.events import EventKind
from pathwatch.table import ListenerTable


@pytest.fixture
def backend() -> Generator[WatchdogBackend, None, None]:
    """Create a watchdog backend that is closed on teardown."""
    watch_backend = WatchdogBackend()
    yield watch_backend
    watch_backend.close()


@pytest.fixture
def key(backend: WatchdogBackend, tmp_path: Path) -> DirectoryWatch:
    """A watch key that is not scheduled on the observer."""
    return DirectoryWatch(tmp_path, backend)


class TestTranslateEvent:
    """Test cases for watchdog event translation."""

    def test_entry_event(self, tmp_path: Path):
        """Test entry events become (kind, name) pairs."""
        event = FileCreatedEvent(str(tmp_path / "new.txt"))

        assert list(translate_event(event, tmp_path)) == [("created", "new.txt")]

    def test_directory_itself_ignored(self, tmp_path: Path):
        """Test events about the watched directory are not entry events."""
        event = DirModifiedEvent(str(tmp_path))

        assert list(translate_event(event, tmp_path)) == []

    def test_move_within_directory(self, tmp_path: Path):
        """Test a rename is split into delete and create."""
        event = FileMovedEvent(str(tmp_path / "old.txt"), str(tmp_path / "new.txt"))

        assert list(translate_event(event, tmp_path)) == [
            ("deleted", "old.txt"),
            ("created", "new.txt"),
        ]

    def test_move_out_of_directory(self, tmp_path: Path):
        """Test moving elsewhere is only a delete here."""
        event = FileMovedEvent(str(tmp_path / "old.txt"), str(tmp_path.parent / "x.txt"))

        assert list(translate_event(event, tmp_path)) == [("deleted", "old.txt")]

    def test_directory_deletion_invalidates_key(self, key: DirectoryWatch, backend: WatchdogBackend, tmp_path: Path):
        """Test deleting the watched directory invalidates its key."""
        handler = _DirectoryEventHandler(key)
        handler.dispatch(DirDeletedEvent(str(tmp_path)))

        handle, events = backend.take_batch()
        assert handle is key
        assert events == []
        assert key.rearm() is False


class TestDirectoryWatch:
    """Test cases for watch key state handling."""

    def test_signal_queues_key_once(self, key: DirectoryWatch, backend: WatchdogBackend):
        """Test a signalled key is queued once until re-armed."""
        key.signal("created", "a")
        key.signal("modified", "b")

        handle, events = backend.take_batch()

        assert handle is key
        assert [(e.kind, e.name) for e in events] == [("created", "a"), ("modified", "b")]

    def test_identical_events_coalesced(self, key: DirectoryWatch, backend: WatchdogBackend):
        """Test repeated identical events fold into one with a count."""
        key.signal("modified", "a")
        key.signal("modified", "a")
        key.signal("modified", "a")

        _, events = backend.take_batch()

        assert len(events) == 1
        assert events[0].count == 3

    def test_rearm_requeues_pending(self, key: DirectoryWatch, backend: WatchdogBackend):
        """Test events arriving mid-batch are delivered after re-arm."""
        key.signal("created", "a")
        backend.take_batch()
        key.signal("created", "b")

        assert key.rearm() is True
        handle, events = backend.take_batch()

        assert handle is key
        assert [e.name for e in events] == ["b"]

    def test_overflow(self, key: DirectoryWatch, backend: WatchdogBackend):
        """Test a burst keeps the first events and folds the rest into an overflow marker."""
        for i in range(MAX_PENDING_EVENTS + 5):
            key.signal("created", f"f{i}")

        _, events = backend.take_batch()

        assert len(events) == MAX_PENDING_EVENTS + 1
        assert [(e.kind, e.name) for e in events[:MAX_PENDING_EVENTS]] == [
            ("created", f"f{i}") for i in range(MAX_PENDING_EVENTS)
        ]
        assert events[-1].kind == EVENT_TYPE_OVERFLOW
        assert events[-1].count == 5

    def test_burst_reaches_listeners(self, key: DirectoryWatch, backend: WatchdogBackend, table: ListenerTable, loop: DispatchLoop, tmp_path: Path, make_recorder):
        """Test every event kept before an overflow is still dispatched."""
        recorder = make_recorder()
        table.add_listener(tmp_path, EventKind.CREATED, recorder)

        for i in range(MAX_PENDING_EVENTS + 1):
            key.signal("created", f"f{i}")
        handle, events = backend.take_batch()
        for raw in events:
            loop.dispatch(handle.directory, raw)

        assert len(recorder.events) == MAX_PENDING_EVENTS
        assert recorder.paths[0] == tmp_path / "f0"

    def test_cancel_is_idempotent(self, key: DirectoryWatch):
        """Test cancelling twice is harmless and disables re-arm."""
        key.cancel()
        key.cancel()

        assert not key.is_valid
        assert key.rearm() is False


class TestWatchdogBackend:
    """Test cases for registering directories with watchdog."""

    def test_register_missing_directory(self, backend: WatchdogBackend, tmp_path: Path):
        """Test registering a missing directory raises an I/O error."""
        with pytest.raises(FileNotFoundError):
            backend.register(tmp_path / "missing")

    def test_register_file(self, backend: WatchdogBackend, tmp_path: Path):
        """Test registering a regular file raises an I/O error."""
        target = tmp_path / "file.txt"
        target.write_text("x")

        with pytest.raises(NotADirectoryError):
            backend.register(target)

    def test_register_and_cancel(self, backend: WatchdogBackend, tmp_path: Path):
        """Test a registered directory can be cancelled."""
        handle = backend.register(tmp_path)

        assert handle.is_valid
        assert handle.directory == tmp_path
        handle.cancel()
        assert not handle.is_valid

    def test_receives_real_events(self, backend: WatchdogBackend, tmp_path: Path):
        """Test file creation reaches the key through the observer."""
        handle = backend.register(tmp_path)
        (tmp_path / "new.txt").touch()

        received, events = backend.take_batch()

        assert received is handle
        assert ("created", "new.txt") in [(e.kind, e.name) for e in events]

    def test_register_after_close(self, backend: WatchdogBackend, tmp_path: Path):
        """Test a closed backend refuses registrations."""
        backend.close()

        with pytest.raises(ClosedWatchServiceError):
            backend.register(tmp_path)

    def test_close_wakes_waiter(self, backend: WatchdogBackend):
        """Test closing interrupts a blocked take_batch."""
        outcome = []

        def wait() -> None:
            try:
                backend.take_batch()
            except ClosedWatchServiceError:
                outcome.append("closed")

        waiter = threading.Thread(target=wait)
        waiter.start()
        backend.close()
        waiter.join(timeout=5.0)

        assert outcome == ["closed"]

    def test_modified_event_maps_to_name(self, key: DirectoryWatch, backend: WatchdogBackend, tmp_path: Path):
        """Test the handler reports names relative to the directory."""
        handler = _DirectoryEventHandler(key)
        handler.dispatch(FileModifiedEvent(str(tmp_path / "a.txt")))

        _, events = backend.take_batch()

        assert [(e.kind, e.name) for e in events] == [("modified", "a.txt")]
