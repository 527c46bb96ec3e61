"""Snapshot store: the latest published snapshot and its generation."""

import threading
import time
from collections.abc import Iterable

from proctop.models import EMPTY_SNAPSHOT, ProcessRecord, Snapshot


class SnapshotStore:
    """
    Holds the most recent Snapshot.

    The lock is only held for the swap and for reads, never while the OS is
    being queried. Generations are assigned here so they are strictly
    increasing regardless of which thread publishes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = EMPTY_SNAPSHOT

    @property
    def current(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    @property
    def generation(self) -> int:
        with self._lock:
            return self._snapshot.generation

    def publish(
        self, records: Iterable[ProcessRecord], captured_at: float | None = None
    ) -> Snapshot:
        """Build a new snapshot from records and swap it in."""
        frozen = tuple(records)
        when = time.time() if captured_at is None else captured_at
        with self._lock:
            snapshot = Snapshot(
                records=frozen,
                captured_at=when,
                generation=self._snapshot.generation + 1,
            )
            self._snapshot = snapshot
        return snapshot
