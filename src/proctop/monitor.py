"""Refresh scheduler and run state for proctop."""

import logging
import threading

from proctop.bridge import EventBridge, HierarchyWarning, RefreshFailed, SnapshotPublished
from proctop.errors import EnumerationError
from proctop.models import Snapshot
from proctop.source import ProcessSource
from proctop.store import SnapshotStore
from proctop.tree import build_forest

logger = logging.getLogger(__name__)


class RunState:
    """
    Cooperative run/pause flags shared by every background loop.

    Loops poll the flags on their own schedule; nothing here interrupts a
    thread that is already inside an OS call.
    """

    def __init__(self, paused: bool = False) -> None:
        self._stopped = threading.Event()
        self._paused = threading.Event()
        if paused:
            self._paused.set()

    @property
    def is_running(self) -> bool:
        return not self._stopped.is_set()

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

    def stop(self) -> None:
        self._stopped.set()

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def toggle_pause(self) -> bool:
        """Flip the pause flag and return the new value."""
        if self._paused.is_set():
            self._paused.clear()
            return False
        self._paused.set()
        return True

    def sleep(self, seconds: float) -> bool:
        """
        Sleep for up to `seconds`, waking early if stopped.

        Returns:
            True if still running after the sleep.
        """
        return not self._stopped.wait(timeout=seconds)


class RefreshScheduler:
    """
    Periodically snapshots the process table into a SnapshotStore.

    Runs in a separate daemon thread. Every published snapshot, and every
    failed enumeration, is announced on the EventBridge.
    """

    def __init__(
        self,
        source: ProcessSource,
        store: SnapshotStore,
        bridge: EventBridge,
        state: RunState,
        interval: float = 1.0,
        warmup_delay: float = 0.5,
    ) -> None:
        """
        Initialize the RefreshScheduler.

        Args:
            source: Where process records come from.
            store: Store that receives each new snapshot.
            bridge: Queue the UI drains for updates.
            state: Shared run/pause flags.
            interval: Seconds between refreshes. Default 1.0s.
            warmup_delay: Pause between the priming sample and the first
                published one, so CPU percentages have a baseline.
        """
        self._source = source
        self._store = store
        self._bridge = bridge
        self._state = state
        self.interval = interval
        self._warmup_delay = warmup_delay
        # Serializes enumerate+publish so refresh N+1 never lands before N
        self._refresh_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def interval(self) -> float:
        """Get the refresh interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the refresh interval."""
        self._interval = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the scheduler thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the refresh thread."""
        if self.is_running:
            return

        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="RefreshScheduler",
        )
        self._thread.start()

    def stop(self) -> None:
        """
        Ask the loop to exit.

        The thread is not joined; it is a daemon and exits on its next tick.
        """
        self._state.stop()

    def warm_up(self) -> None:
        """Take a priming sample and wait before trusting CPU figures."""
        try:
            self._source.enumerate()
        except EnumerationError as exc:
            self._report_failure(exc)
        self._state.sleep(self._warmup_delay)

    def refresh(self) -> Snapshot | None:
        """
        Enumerate processes and publish a new snapshot.

        On failure the previous snapshot stays in place and a RefreshFailed
        message is submitted instead.

        Returns:
            The published snapshot, or None if enumeration failed.
        """
        with self._refresh_lock:
            try:
                records = self._source.enumerate()
            except EnumerationError as exc:
                self._report_failure(exc)
                return None
            snapshot = self._store.publish(records)
            forest = build_forest(snapshot)
            self._bridge.submit(SnapshotPublished(snapshot, forest))
            for problem in forest.problems:
                self._bridge.submit(HierarchyWarning(problem.pid, str(problem)))
        return snapshot

    def refresh_now(self) -> Snapshot | None:
        """
        Refresh on demand, e.g. after a control action.

        Does nothing while paused, so a paused view never reaches the OS.
        """
        if self._state.is_paused:
            logger.debug("Skipping on-demand refresh while paused")
            return None
        return self.refresh()

    def _report_failure(self, exc: EnumerationError) -> None:
        logger.warning("Process enumeration failed: %s", exc)
        self._bridge.submit(RefreshFailed(str(exc)))

    def _poll_loop(self) -> None:
        """Main refresh loop running in the background thread."""
        warmed = False
        while self._state.is_running:
            if not self._state.is_paused and not warmed:
                self.warm_up()
                warmed = True

            if self._state.is_running and not self._state.is_paused:
                self.refresh()

            # Wait for interval seconds or until stop is requested
            self._state.sleep(self._interval)
