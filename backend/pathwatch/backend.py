"""
PathWatch Native Watch Backend.

Adapts watchdog observers to a per-directory watch-key model:
each registered directory gets a handle that accumulates raw events,
is queued once when it becomes signalled, and must be re-armed after
its batch has been consumed.
Requires Python 3.11+.
"""

import os
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

from utils.config import WatcherSettings, get_settings
from utils.logger import LoggerMixin

# Pending events kept per handle; the rest of a burst is folded
# into a single overflow marker after them.
MAX_PENDING_EVENTS = 512

EVENT_TYPE_OVERFLOW = "overflow"


class ClosedWatchServiceError(RuntimeError):
    """Raised when a closed backend is used or a blocked wait is interrupted."""


@dataclass
class RawEvent:
    """An event as reported by the backend, relative to the watched directory."""

    kind: str
    name: str
    count: int = 1


class WatchHandle(Protocol):
    """Registration of interest in one directory."""

    directory: Path

    @property
    def is_valid(self) -> bool: ...

    def cancel(self) -> None: ...

    def rearm(self) -> bool: ...


class WatchBackend(Protocol):
    """The native change-notification primitive."""

    def register(self, directory: Path) -> WatchHandle: ...

    def take_batch(self) -> tuple[WatchHandle, list[RawEvent]]: ...

    def close(self) -> None: ...


class DirectoryWatch:
    """
    Watch key for a single directory scheduled on a watchdog observer.

    A key is *ready* until an event arrives, at which point it becomes
    *signalled* and is queued for ``take_batch``. It is not queued again
    until ``rearm`` is called, so each directory has at most one batch
    in flight.
    """

    def __init__(self, directory: Path, backend: "WatchdogBackend") -> None:
        self.directory = directory
        self._backend = backend
        self._lock = threading.Lock()
        self._pending: list[RawEvent] = []
        self._signalled = False
        self._valid = True
        self.watch: ObservedWatch | None = None

    @property
    def is_valid(self) -> bool:
        """Check if the key can still deliver events."""
        return self._valid

    def signal(self, kind: str, name: str) -> None:
        """Record a raw event and queue the key if it was ready."""
        with self._lock:
            if not self._valid:
                return
            if self._pending:
                last = self._pending[-1]
                if last.kind == EVENT_TYPE_OVERFLOW:
                    last.count += 1
                    return
                if last.kind == kind and last.name == name:
                    last.count += 1
                    return
            if len(self._pending) >= MAX_PENDING_EVENTS:
                kind, name = EVENT_TYPE_OVERFLOW, ""
            self._pending.append(RawEvent(kind=kind, name=name))
            self._queue_if_ready()

    def invalidate(self) -> None:
        """Mark the key unusable, e.g. after its directory was deleted."""
        with self._lock:
            self._valid = False
            self._queue_if_ready()

    def poll_events(self) -> list[RawEvent]:
        """Take all pending events."""
        with self._lock:
            events, self._pending = self._pending, []
        return events

    def rearm(self) -> bool:
        """
        Return the key to the ready state after its batch was processed.

        Events that arrived while the batch was being handled cause the
        key to be queued again straight away.

        Returns:
            False if the key is no longer valid
        """
        with self._lock:
            if not self._valid:
                return False
            if self._pending:
                self._backend.enqueue(self)
            else:
                self._signalled = False
            return True

    def cancel(self) -> None:
        """Stop watching the directory. Calling twice is harmless."""
        with self._lock:
            self._valid = False
            watch, self.watch = self.watch, None
        # Outside our lock: the observer holds its own lock while it
        # calls into signal().
        if watch is not None:
            self._backend.unschedule(watch)

    def _queue_if_ready(self) -> None:
        if not self._signalled:
            self._signalled = True
            self._backend.enqueue(self)

    def __repr__(self) -> str:
        state = "valid" if self._valid else "invalid"
        return f"DirectoryWatch({str(self.directory)!r}, {state})"


def translate_event(event: FileSystemEvent, directory: Path) -> Iterator[tuple[str, str]]:
    """
    Convert a watchdog event into ``(kind, name)`` pairs for a directory.

    Names are single path components relative to ``directory``. Events
    about the directory itself are not entry events and yield nothing.
    """
    src = Path(os.fsdecode(event.src_path))
    if src == directory:
        return

    if event.event_type == EVENT_TYPE_MOVED:
        yield EVENT_TYPE_DELETED, src.name
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            dest = Path(os.fsdecode(dest_path))
            if dest.parent == directory:
                yield EVENT_TYPE_CREATED, dest.name
        return

    yield event.event_type, src.name


class _DirectoryEventHandler(FileSystemEventHandler):
    """Feeds watchdog events for one scheduled directory into its key."""

    def __init__(self, key: DirectoryWatch) -> None:
        super().__init__()
        self._key = key

    def on_any_event(self, event: FileSystemEvent) -> None:
        directory = self._key.directory
        if (
            event.event_type == EVENT_TYPE_DELETED
            and Path(os.fsdecode(event.src_path)) == directory
        ):
            self._key.invalidate()
            return
        for kind, name in translate_event(event, directory):
            self._key.signal(kind, name)


class WatchdogBackend(LoggerMixin):
    """
    Watch backend built on a single watchdog observer.

    Every registered directory is scheduled non-recursively with its own
    handler. Signalled keys are handed to ``take_batch`` callers in the
    order they became signalled.
    """

    def __init__(
        self,
        settings: WatcherSettings | None = None,
        observer: BaseObserver | None = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            settings: Watcher settings (defaults to application settings)
            observer: Pre-built observer; overrides the configured kind
        """
        self._settings = settings or get_settings().watcher
        self._observer = observer or self._create_observer()
        self._ready: queue.SimpleQueue[DirectoryWatch | None] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False

    def _create_observer(self) -> BaseObserver:
        if self._settings.observer == "polling":
            return PollingObserver(timeout=self._settings.polling_interval_s)
        return Observer()

    @property
    def closed(self) -> bool:
        """Check if the backend has been closed."""
        return self._closed

    def register(self, directory: Path) -> DirectoryWatch:
        """
        Start watching a directory.

        Args:
            directory: Existing directory to watch

        Returns:
            Watch key for the directory

        Raises:
            ClosedWatchServiceError: If the backend was closed
            OSError: If the directory cannot be watched
        """
        with self._lock:
            if self._closed:
                raise ClosedWatchServiceError("watch backend is closed")
            if not self._observer.is_alive():
                self._observer.start()

        if not directory.exists():
            raise FileNotFoundError(2, "No such directory", str(directory))
        if not directory.is_dir():
            raise NotADirectoryError(20, "Not a directory", str(directory))

        key = DirectoryWatch(directory, self)
        handler = _DirectoryEventHandler(key)
        try:
            key.watch = self._observer.schedule(handler, str(directory), recursive=False)
        except OSError:
            # schedule() records the handler before the emitter fails to start
            self._observer.remove_handler_for_watch(
                handler, ObservedWatch(str(directory), recursive=False)
            )
            raise
        return key

    def unschedule(self, watch: ObservedWatch) -> None:
        """Remove a scheduled watch from the observer."""
        try:
            self._observer.unschedule(watch)
        except KeyError:
            # Already gone, e.g. the observer stopped and unscheduled all.
            self.log.debug("watch_already_unscheduled", path=watch.path)

    def enqueue(self, key: DirectoryWatch) -> None:
        """Queue a signalled key for ``take_batch``."""
        self._ready.put(key)

    def take_batch(self) -> tuple[DirectoryWatch, list[RawEvent]]:
        """
        Wait for the next signalled key and take its pending events.

        Blocks without a timeout until a key is signalled or the backend
        is closed.

        Raises:
            ClosedWatchServiceError: If the backend is closed while waiting
        """
        key = self._ready.get()
        if key is None:
            # Leave the wake-up marker for any other waiter
            self._ready.put(None)
            raise ClosedWatchServiceError("watch backend is closed")
        return key, key.poll_events()

    def close(self) -> None:
        """Stop the observer and wake any thread blocked in ``take_batch``."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            observer_alive = self._observer.is_alive()

        if observer_alive:
            self._observer.stop()
            self._observer.join(timeout=self._settings.shutdown_timeout_s)
        self._ready.put(None)
        self.log.debug("watch_backend_closed")
