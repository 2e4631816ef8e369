# services/rankings/snapshot_store.py
from __future__ import annotations

from threading import Lock
from typing import Optional

from services.rankings.models import Snapshot


class SnapshotStore:
    """
    Holder of the current Snapshot.

    The refresh pipeline is the only writer and always swaps in a complete
    object; the lock is held for a reference copy only, so readers never see
    a half-built result and never hold up the writer.
    """

    def __init__(self, initial: Optional[Snapshot] = None):
        self._lock = Lock()
        self._current = initial

    def current(self) -> Optional[Snapshot]:
        with self._lock:
            return self._current

    def replace(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._current = snapshot

    @property
    def is_empty(self) -> bool:
        return self.current() is None
