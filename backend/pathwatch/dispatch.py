"""
PathWatch Dispatch Loop.

Worker that turns directory-scoped batches of raw events into
listener invocations.
Requires Python 3.11+.
"""

import threading
from enum import Enum
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
)

from pathwatch.backend import (
    ClosedWatchServiceError,
    RawEvent,
    WatchBackend,
    WatchHandle,
)
from pathwatch.events import EventKind, FileEvent
from pathwatch.registry import WatchRegistry
from pathwatch.table import ListenerTable
from utils.logger import LoggerMixin

RAW_KIND_MAP: dict[str, EventKind] = {
    EVENT_TYPE_CREATED: EventKind.CREATED,
    EVENT_TYPE_MODIFIED: EventKind.CHANGED,
    EVENT_TYPE_DELETED: EventKind.DELETED,
}


def classify(raw_kind: str) -> EventKind | None:
    """Map a raw backend event type to an event kind, or None to ignore it."""
    return RAW_KIND_MAP.get(raw_kind)


class LoopState(str, Enum):
    """Lifecycle of a dispatch loop."""

    RUNNING = "running"
    STOPPED = "stopped"


class DispatchLoop(LoggerMixin):
    """
    Consumes event batches from a backend and invokes listeners.

    One worker thread blocks on the backend; it is the only thread that
    calls listener callbacks. Multicasts are copied under the shared
    lock and invoked after it is released, so callbacks may add or
    remove listeners themselves.
    """

    def __init__(
        self,
        backend: WatchBackend,
        registry: WatchRegistry,
        table: ListenerTable,
        thread_name: str = "pathwatch-dispatch",
    ) -> None:
        self._backend = backend
        self._registry = registry
        self._table = table
        self._thread_name = thread_name
        self._thread: threading.Thread | None = None
        self._state: LoopState | None = None
        self._shut_down = False
        self._state_lock = threading.Lock()

    @property
    def state(self) -> LoopState | None:
        """Current state, None before the loop was started."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the loop is running."""
        return self._state is LoopState.RUNNING

    def start(self) -> "DispatchLoop":
        """
        Start the worker thread.

        Raises:
            RuntimeError: If the loop was already started
        """
        with self._state_lock:
            if self._state is not None:
                raise RuntimeError(f"dispatch loop already {self._state.value}")
            self._state = LoopState.RUNNING
            self._thread = threading.Thread(
                target=self._run, name=self._thread_name, daemon=True
            )
            self._thread.start()

        self.log.info("dispatch_loop_started", thread=self._thread_name)
        return self

    def stop(self, timeout: float | None = None) -> None:
        """
        Stop the loop.

        Cancels all watches, closes the backend to interrupt the blocked
        wait and joins the worker, unless called from the worker itself
        (e.g. by a listener).

        Args:
            timeout: Seconds to wait for the worker to exit
        """
        with self._state_lock:
            if self._shut_down:
                return
            self._shut_down = True
            self._state = LoopState.STOPPED

        self._registry.cancel_all()
        self._backend.close()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                self.log.warning("dispatch_loop_join_timeout", timeout=timeout)

        self.log.info("dispatch_loop_stopped")

    def _run(self) -> None:
        try:
            while self._state is LoopState.RUNNING:
                try:
                    handle, events = self._backend.take_batch()
                except ClosedWatchServiceError:
                    break
                if self._state is not LoopState.RUNNING:
                    break
                self.process_batch(handle, events)
        except Exception:
            self.log.exception("dispatch_worker_failed")
        finally:
            self._state = LoopState.STOPPED
            self.log.debug("dispatch_worker_exited")

    def process_batch(self, handle: WatchHandle, events: list[RawEvent]) -> None:
        """
        Dispatch one batch, then re-arm its handle.

        A handle that can no longer be re-armed has its registry entry
        dropped; other directories are unaffected.
        """
        for raw in events:
            self.dispatch(handle.directory, raw)

        try:
            rearmed = handle.rearm()
        except OSError as e:
            self.log.warning(
                "watch_rearm_failed", directory=str(handle.directory), error=str(e)
            )
            rearmed = False

        if not rearmed and self._registry.discard(handle):
            self.log.warning("watch_dropped", directory=str(handle.directory))

    def dispatch(self, directory: Path, raw: RawEvent) -> int:
        """
        Invoke the listeners matching one raw event.

        The event path is always rebuilt from the directory the handle
        was registered for and the reported entry name. Listeners keyed
        by the parent directory and by the exact path both fire, each
        with its own event.

        Returns:
            Number of multicasts invoked (0, 1 or 2)
        """
        kind = classify(raw.kind)
        if kind is None:
            return 0

        path = directory / raw.name
        directory_listeners = self._table.snapshot(path.parent, kind)
        file_listeners = self._table.snapshot(path, kind)

        invoked = 0
        if directory_listeners is not None:
            self.log.debug("dispatch_event", kind=kind.value, path=str(path), scope="directory")
            directory_listeners.invoke(FileEvent(path, kind))
            invoked += 1
        if file_listeners is not None:
            self.log.debug("dispatch_event", kind=kind.value, path=str(path), scope="file")
            file_listeners.invoke(FileEvent(path, kind))
            invoked += 1
        return invoked
