"""
PathWatch Event Types.

Event values delivered to listeners and path helpers shared by the
registration and dispatch code.
Requires Python 3.11+.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class EventKind(str, Enum):
    """Kinds of file system activity a listener can subscribe to."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileEvent:
    """A single change observed on a path."""

    path: Path
    kind: EventKind

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.path}"


Listener = Callable[[FileEvent], None]


def normalize_path(path: Path | str) -> Path:
    """
    Normalize a path for use as a listener or watch key.

    The result is absolute with ``.``/``..`` segments collapsed.
    Symlinks are left alone so keys match the paths callers used.
    """
    return Path(os.path.abspath(path))


def owning_directory(path: Path) -> Path:
    """
    Get the directory that must be watched to observe ``path``.

    A directory owns itself; anything else (including a path that
    does not exist yet) is owned by its parent.
    """
    if path.is_dir():
        return path
    return path.parent
