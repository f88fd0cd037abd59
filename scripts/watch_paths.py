#!/usr/bin/env python3
"""
PathWatch Watch Script.

Prints file system events for the given files and directories.
Requires Python 3.11+.

Usage:
    python scripts/watch_paths.py . ./notes.txt --kind created --kind deleted
"""

import argparse
import sys
import threading
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from pathwatch import EventKind, FileEvent, PathWatchService
from utils.logger import configure_logging, get_logger


configure_logging()
logger = get_logger("watch_paths")


def print_event(event: FileEvent) -> None:
    """Log a received event."""
    logger.info("file_event", kind=event.kind.value, path=str(event.path))


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Print create/change/delete events for files and directories"
    )
    parser.add_argument(
        "paths",
        type=Path,
        nargs="+",
        help="Files or directories to watch",
    )
    parser.add_argument(
        "--kind",
        dest="kinds",
        action="append",
        choices=[kind.value for kind in EventKind],
        help="Event kinds to report (default: all)",
    )

    args = parser.parse_args()
    kinds = [EventKind(k) for k in args.kinds] if args.kinds else list(EventKind)

    stop = threading.Event()
    with PathWatchService() as service:
        for path in args.paths:
            for kind in kinds:
                try:
                    service.add_listener(path, kind, print_event)
                except OSError as e:
                    logger.error("watch_failed", path=str(path), error=str(e))
                    return 1

        logger.info(
            "watching",
            paths=[str(p) for p in args.paths],
            kinds=[k.value for k in kinds],
            directories=[str(d) for d in service.watched_directories],
        )
        try:
            stop.wait()
        except KeyboardInterrupt:
            logger.info("interrupted")

    return 0


if __name__ == "__main__":
    sys.exit(main())
