"""
PathWatch Listener Multicast.

Ordered set of callbacks for one (path, kind) pair.
Requires Python 3.11+.
"""

from collections.abc import Iterable, Iterator
from pathlib import Path

from pathwatch.events import EventKind, FileEvent, Listener
from utils.logger import LoggerMixin


class ListenerMulticast(LoggerMixin):
    """
    Callbacks registered for one event kind on one path.

    Duplicates are allowed; ``remove`` drops a single equal occurrence.
    The multicast does no locking of its own: the listener table
    mutates it under the shared lock and dispatch invokes a copy.
    """

    def __init__(
        self,
        path: Path,
        kind: EventKind,
        callbacks: Iterable[Listener] = (),
    ) -> None:
        self.path = path
        self.kind = kind
        self._callbacks: list[Listener] = list(callbacks)

    def add(self, callback: Listener) -> None:
        """Append a callback."""
        self._callbacks.append(callback)

    def remove(self, callback: Listener) -> bool:
        """
        Remove the first occurrence of a callback.

        Returns:
            True if a callback was removed, False if it was not present
        """
        try:
            self._callbacks.remove(callback)
        except ValueError:
            return False
        return True

    def invoke(self, event: FileEvent) -> int:
        """
        Call every callback in insertion order.

        A callback that raises is logged and skipped; the remaining
        callbacks still run.

        Args:
            event: Event passed to each callback

        Returns:
            Number of callbacks that raised
        """
        failures = 0
        for callback in self._callbacks:
            try:
                callback(event)
            except Exception:
                failures += 1
                self.log.exception(
                    "listener_failed",
                    path=str(event.path),
                    kind=event.kind.value,
                    listener=repr(callback),
                )
        return failures

    def is_empty(self) -> bool:
        """Check if no callbacks remain."""
        return not self._callbacks

    def copy(self) -> "ListenerMulticast":
        """Snapshot of this multicast, safe to invoke without the lock."""
        return ListenerMulticast(self.path, self.kind, self._callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)

    def __iter__(self) -> Iterator[Listener]:
        return iter(list(self._callbacks))

    def __repr__(self) -> str:
        return (
            f"ListenerMulticast(path={str(self.path)!r}, "
            f"kind={self.kind.value!r}, listeners={len(self._callbacks)})"
        )
