"""
PathWatch Watch Registry.

Keeps exactly one native watch handle per watched directory.
Requires Python 3.11+.
"""

from __future__ import annotations

import threading
from pathlib import Path

from pathwatch.backend import WatchBackend, WatchHandle
from utils.logger import LoggerMixin


class WatchRegistry(LoggerMixin):
    """
    Maps watched directories to their native watch handles.

    The lock is shared with the listener table so that registration
    checks and cancellations are atomic with listener bookkeeping.
    """

    def __init__(
        self,
        backend: WatchBackend,
        lock: threading.RLock | None = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            backend: Native watch primitive used to create handles
            lock: Lock guarding all watch state (a new RLock by default)
        """
        self._backend = backend
        self._lock = lock or threading.RLock()
        self._handles: dict[Path, WatchHandle] = {}

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding the directory to handle map."""
        return self._lock

    def ensure_watched(self, directory: Path) -> WatchHandle:
        """
        Register a directory with the backend unless it already is.

        Args:
            directory: Normalized directory path

        Returns:
            The directory's watch handle

        Raises:
            OSError: If the backend cannot watch the directory
        """
        with self._lock:
            handle = self._handles.get(directory)
            if handle is None:
                handle = self._backend.register(directory)
                self._handles[directory] = handle
                self.log.debug("watch_registered", directory=str(directory))
            return handle

    def cancel(self, directory: Path) -> bool:
        """
        Cancel the watch on a directory.

        Returns:
            True if the directory was being watched
        """
        with self._lock:
            handle = self._handles.pop(directory, None)
            if handle is None:
                return False
            handle.cancel()
        self.log.debug("watch_cancelled", directory=str(directory))
        return True

    def discard(self, handle: WatchHandle) -> bool:
        """
        Drop a handle's entry if it is still the registered one.

        A newer handle registered for the same directory is left alone.

        Returns:
            True if the entry was removed
        """
        with self._lock:
            if self._handles.get(handle.directory) is not handle:
                return False
            del self._handles[handle.directory]
            handle.cancel()
        return True

    def cancel_all(self) -> int:
        """
        Cancel every handle, used when shutting down.

        Returns:
            Number of handles cancelled
        """
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            for handle in handles:
                handle.cancel()
        if handles:
            self.log.debug("watches_cancelled", count=len(handles))
        return len(handles)

    def get(self, directory: Path) -> WatchHandle | None:
        """Get the handle for a directory, if watched."""
        with self._lock:
            return self._handles.get(directory)

    def is_watched(self, directory: Path) -> bool:
        """Check if a directory currently has a handle."""
        with self._lock:
            return directory in self._handles

    @property
    def directories(self) -> list[Path]:
        """Currently watched directories."""
        with self._lock:
            return list(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
