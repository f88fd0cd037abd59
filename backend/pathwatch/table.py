"""
PathWatch Listener Table.

Per-kind listener maps and the policy that keeps directory watches
in step with listener interest.
Requires Python 3.11+.
"""

from pathlib import Path

from pathwatch.events import (
    EventKind,
    Listener,
    normalize_path,
    owning_directory,
)
from pathwatch.multicast import ListenerMulticast
from pathwatch.registry import WatchRegistry
from utils.logger import LoggerMixin


class ListenerTable(LoggerMixin):
    """
    Listener multicasts keyed by path, one map per event kind.

    A listener can be keyed by a directory (fires for any entry in it)
    or by a file (fires for that file only). Either way the native watch
    is held by the owning directory, and it is released once no listened
    path owned by that directory remains.
    """

    def __init__(self, registry: WatchRegistry) -> None:
        self._registry = registry
        self._lock = registry.lock
        self._multicasts: dict[EventKind, dict[Path, ListenerMulticast]] = {
            kind: {} for kind in EventKind
        }
        # listened path -> directories whose watches it relies on
        self._owners: dict[Path, set[Path]] = {}
        # watched directory -> listened paths relying on it
        self._interest: dict[Path, set[Path]] = {}

    def add_listener(
        self, path: Path | str, kind: EventKind | str, callback: Listener
    ) -> None:
        """
        Subscribe a callback to one kind of event on a path.

        The owning directory is registered before the callback is
        recorded, so a failed registration leaves no listener behind.

        Raises:
            OSError: If the owning directory cannot be watched
        """
        path = normalize_path(path)
        kind = EventKind(kind)
        with self._lock:
            owner = owning_directory(path)
            self._registry.ensure_watched(owner)

            multicasts = self._multicasts[kind]
            multicast = multicasts.get(path)
            if multicast is None:
                multicast = multicasts[path] = ListenerMulticast(path, kind)
            multicast.add(callback)

            self._owners.setdefault(path, set()).add(owner)
            self._interest.setdefault(owner, set()).add(path)

        self.log.debug(
            "listener_added", path=str(path), kind=kind.value, directory=str(owner)
        )

    def remove_listener(
        self, path: Path | str, kind: EventKind | str, callback: Listener
    ) -> bool:
        """
        Unsubscribe one occurrence of a callback.

        Returns:
            False if no such listener was registered
        """
        path = normalize_path(path)
        kind = EventKind(kind)
        with self._lock:
            multicasts = self._multicasts[kind]
            multicast = multicasts.get(path)
            if multicast is None or not multicast.remove(callback):
                return False
            if multicast.is_empty():
                del multicasts[path]
                self._release(path)

        self.log.debug("listener_removed", path=str(path), kind=kind.value)
        return True

    def _release(self, path: Path) -> None:
        """Drop a path's claims on directory watches once it has no listeners."""
        if self._has_listeners(path):
            return

        for owner in self._owners.pop(path):
            paths = self._interest[owner]
            paths.discard(path)
            if paths:
                # The directory itself or a sibling is still listened to
                continue
            del self._interest[owner]
            self._registry.cancel(owner)

    def _has_listeners(self, path: Path) -> bool:
        return any(path in multicasts for multicasts in self._multicasts.values())

    def snapshot(self, path: Path, kind: EventKind) -> ListenerMulticast | None:
        """Copy of the multicast for (path, kind), safe to invoke unlocked."""
        with self._lock:
            multicast = self._multicasts[kind].get(path)
            if multicast is None:
                return None
            return multicast.copy()

    def has_listeners(self, path: Path | str) -> bool:
        """Check if a path has listeners of any kind."""
        path = normalize_path(path)
        with self._lock:
            return self._has_listeners(path)

    def listener_count(self, path: Path | str, kind: EventKind | str) -> int:
        """Number of callbacks registered for (path, kind)."""
        path = normalize_path(path)
        with self._lock:
            multicast = self._multicasts[EventKind(kind)].get(path)
            return len(multicast) if multicast is not None else 0
