"""Polling watcher: turns source-tree changes into one ``update_file`` call each."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from factorygen.orchestrator import FactoriesBuilder
from factorygen.utils import find_source_files

logger = logging.getLogger(__name__)

Snapshot = dict[str, tuple[int, int]]

CREATED = "created"
CHANGED = "written to"
DELETED = "deleted"


def take_snapshot(src_path: str | Path) -> Snapshot:
    """``{path: (mtime_ns, size)}`` for every module under *src_path*."""
    snapshot: Snapshot = {}
    for path in find_source_files(src_path):
        try:
            st = os.stat(path)
        except OSError:
            # Deleted between listing and stat; the next poll reports it
            continue
        snapshot[path] = (st.st_mtime_ns, st.st_size)
    return snapshot


def diff_snapshots(old: Snapshot, new: Snapshot) -> list[tuple[str, str]]:
    """``(path, event)`` pairs for every difference, sorted by path."""
    events = []
    for path in sorted(old.keys() | new.keys()):
        if path not in old:
            events.append((path, CREATED))
        elif path not in new:
            events.append((path, DELETED))
        elif old[path] != new[path]:
            events.append((path, CHANGED))
    return events


class PollingWatcher:
    """Feed file events from *src_path* into *builder*, one at a time."""

    def __init__(self, builder: FactoriesBuilder, src_path: str | Path,
                 ignore_paths: Iterable[str | Path] = (), *, interval: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.builder = builder
        self.src_path = src_path
        self.ignore_paths = list(ignore_paths)
        self.interval = interval
        self._sleep = sleep
        self._snapshot: Snapshot | None = None

    def prime(self) -> None:
        """Record the current state of the tree without reporting anything."""
        self._snapshot = take_snapshot(self.src_path)

    def poll_once(self) -> list[tuple[str, str]]:
        """Report and apply every change since the last poll."""
        if self._snapshot is None:
            self.prime()
            return []
        current = take_snapshot(self.src_path)
        events = diff_snapshots(self._snapshot, current)
        self._snapshot = current
        for path, event in events:
            if self.builder.is_path_ignored(path, self.ignore_paths):
                logger.debug("Ignoring %s event for %s", event, path)
                continue
            self.builder.update_file(path, self.ignore_paths, event=event)
        return events

    def run(self, *, max_polls: int | None = None) -> None:
        """Poll until interrupted (or *max_polls* polls have run)."""
        if self._snapshot is None:
            self.prime()
        polls = 0
        while max_polls is None or polls < max_polls:
            self._sleep(self.interval)
            self.poll_once()
            polls += 1
