"""
PathWatch Package.

Listener multiplexing over per-directory native file system watches.
Requires Python 3.11+.
"""

from pathwatch.backend import ClosedWatchServiceError, WatchdogBackend
from pathwatch.dispatch import DispatchLoop, LoopState
from pathwatch.events import EventKind, FileEvent, Listener
from pathwatch.multicast import ListenerMulticast
from pathwatch.registry import WatchRegistry
from pathwatch.service import PathWatchService
from pathwatch.table import ListenerTable

__all__ = [
    "ClosedWatchServiceError",
    "DispatchLoop",
    "EventKind",
    "FileEvent",
    "Listener",
    "ListenerMulticast",
    "ListenerTable",
    "LoopState",
    "PathWatchService",
    "WatchRegistry",
    "WatchdogBackend",
]
