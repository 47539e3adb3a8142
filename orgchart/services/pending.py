"""
Pending-operation tracker — per-position in-flight markers.

A drag-and-drop mutation touches two positions (source and target).
While its remote calls are outstanding, both are marked busy so a second
gesture naming either of them is rejected instead of racing the first.

One tracker is owned by the application (``app.extensions``) and shared
by every request thread; tests build their own isolated instances.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from orgchart.services.errors import BusyConflict
from orgchart.services.identifiers import normalize

logger = logging.getLogger(__name__)


def _keys(ids: Iterable[Any]) -> set[str]:
    """Normalize ids, dropping blanks (e.g. a detach has no target)."""
    return {key for key in (normalize(i) for i in ids) if key}


class PendingOperationTracker:
    """In-memory map of position id to busy flag."""

    def __init__(self) -> None:
        self._busy: set[str] = set()
        self._lock = threading.Lock()

    def is_busy(self, position_id: Any) -> bool:
        """True when ``position_id`` has an operation in flight."""
        with self._lock:
            return normalize(position_id) in self._busy

    def begin(self, ids: Iterable[Any]) -> bool:
        """
        Mark every id busy, or none of them.

        Returns:
            False (and marks nothing) when any id is already busy.
        """
        keys = _keys(ids)
        with self._lock:
            if keys & self._busy:
                return False
            self._busy |= keys
        return True

    def end(self, ids: Iterable[Any]) -> None:
        """Clear the busy flag on every id.  Unknown ids are ignored."""
        keys = _keys(ids)
        with self._lock:
            self._busy -= keys

    def busy_ids(self) -> list[str]:
        """Sorted snapshot of the ids currently in flight."""
        with self._lock:
            return sorted(self._busy)

    @contextmanager
    def hold(self, ids: Iterable[Any]) -> Iterator[set[str]]:
        """
        Mark ``ids`` busy for the duration of a ``with`` block.

        Raises:
            BusyConflict: If any id already has an operation in flight.
        """
        keys = _keys(ids)
        if not self.begin(keys):
            with self._lock:
                conflicting = keys & self._busy
            raise BusyConflict(conflicting or keys)
        try:
            yield keys
        finally:
            self.end(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._busy)
