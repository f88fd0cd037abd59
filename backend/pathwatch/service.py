"""
PathWatch Service.

Facade wiring the backend, registry, listener table and dispatch loop.
Requires Python 3.11+.
"""

import threading
from pathlib import Path
from typing import Any

from pathwatch.backend import WatchBackend, WatchdogBackend
from pathwatch.dispatch import DispatchLoop
from pathwatch.events import EventKind, Listener
from pathwatch.registry import WatchRegistry
from pathwatch.table import ListenerTable
from utils.config import WatcherSettings, get_settings
from utils.logger import LoggerMixin


class PathWatchService(LoggerMixin):
    """
    Notifies listeners of created, changed and deleted files.

    Listeners may be attached to a directory (any entry in it) or to a
    single file. However many listeners exist, each directory is watched
    through one native handle.

    Example:
        with PathWatchService() as service:
            service.add_listener(Path("."), EventKind.CREATED, print)
            ...
    """

    def __init__(
        self,
        backend: WatchBackend | None = None,
        settings: WatcherSettings | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            backend: Native watch primitive (a watchdog backend by default)
            settings: Watcher settings (defaults to application settings)
        """
        self._settings = settings or get_settings().watcher
        self._backend = backend or WatchdogBackend(settings=self._settings)
        self._lock = threading.RLock()
        self._registry = WatchRegistry(self._backend, self._lock)
        self._table = ListenerTable(self._registry)
        self._loop = DispatchLoop(
            self._backend,
            self._registry,
            self._table,
            thread_name=self._settings.thread_name,
        )

    @property
    def registry(self) -> WatchRegistry:
        return self._registry

    @property
    def table(self) -> ListenerTable:
        return self._table

    @property
    def loop(self) -> DispatchLoop:
        return self._loop

    def add_listener(
        self, path: Path | str, kind: EventKind | str, callback: Listener
    ) -> None:
        """
        Subscribe a callback to one kind of event on a file or directory.

        Raises:
            OSError: If the owning directory cannot be watched
        """
        self._table.add_listener(path, kind, callback)

    def remove_listener(
        self, path: Path | str, kind: EventKind | str, callback: Listener
    ) -> bool:
        """Unsubscribe a callback. Returns False if it was not registered."""
        return self._table.remove_listener(path, kind, callback)

    def start(self) -> None:
        """Start dispatching events."""
        self._loop.start()

    def stop(self) -> None:
        """Stop dispatching events and release all watches."""
        self._loop.stop(timeout=self._settings.shutdown_timeout_s)

    @property
    def is_running(self) -> bool:
        """Check if the service is dispatching events."""
        return self._loop.is_running

    @property
    def watched_directories(self) -> list[Path]:
        """Directories currently holding a native watch."""
        return self._registry.directories

    def __enter__(self) -> "PathWatchService":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.stop()
