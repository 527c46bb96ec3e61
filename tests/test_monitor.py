"""Tests for the SnapshotStore, RunState and RefreshScheduler."""

import threading
import time

from conftest import FakeSource, make_record
from proctop.bridge import EventBridge, HierarchyWarning, RefreshFailed, SnapshotPublished
from proctop.monitor import RefreshScheduler, RunState
from proctop.store import SnapshotStore


def _wait_for(predicate, timeout: float = 3.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def _scheduler(source, store=None, bridge=None, state=None, interval=0.1):
    return RefreshScheduler(
        source,
        store or SnapshotStore(),
        bridge or EventBridge(),
        state or RunState(),
        interval=interval,
        warmup_delay=0.0,
    )


class TestSnapshotStore:
    """Tests for SnapshotStore."""

    def test_starts_empty(self):
        store = SnapshotStore()
        assert store.generation == 0
        assert len(store.current) == 0

    def test_publish_swaps_and_increments(self, records):
        store = SnapshotStore()
        first = store.publish(records, captured_at=10.0)
        second = store.publish(records[:1], captured_at=11.0)

        assert first.generation == 1
        assert second.generation == 2
        assert store.current is second
        # The old snapshot is untouched
        assert len(first) == len(records)
        assert first.captured_at == 10.0

    def test_generation_strictly_increasing_across_threads(self, records):
        store = SnapshotStore()
        seen: list[int] = []
        lock = threading.Lock()

        def publish_many():
            for _ in range(200):
                snap = store.publish(records)
                with lock:
                    seen.append(snap.generation)

        threads = [threading.Thread(target=publish_many) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(seen) == list(range(1, 801))
        assert store.generation == 800


class TestRunState:
    """Tests for RunState flags."""

    def test_defaults(self):
        state = RunState()
        assert state.is_running
        assert not state.is_paused

    def test_pause_resume_toggle(self):
        state = RunState(paused=True)
        assert state.is_paused

        state.resume()
        assert not state.is_paused

        assert state.toggle_pause() is True
        assert state.toggle_pause() is False

    def test_sleep_returns_early_when_stopped(self):
        state = RunState()
        threading.Timer(0.05, state.stop).start()

        start = time.time()
        still_running = state.sleep(5.0)

        assert still_running is False
        assert time.time() - start < 2.0


class TestRefreshScheduler:
    """Tests for RefreshScheduler."""

    def test_scheduler_creation(self, fake_source):
        scheduler = RefreshScheduler(fake_source, SnapshotStore(), EventBridge(), RunState())

        assert scheduler.interval == 1.0
        assert not scheduler.is_running

    def test_interval_minimum(self, fake_source):
        scheduler = _scheduler(fake_source)

        scheduler.interval = 0.01  # Very small value
        assert scheduler.interval >= 0.1  # Should be clamped to minimum

    def test_refresh_publishes_snapshot_and_message(self, fake_source, records):
        store = SnapshotStore()
        bridge = EventBridge()
        scheduler = _scheduler(fake_source, store, bridge)

        snapshot = scheduler.refresh()

        assert snapshot is store.current
        assert snapshot.generation == 1
        assert len(snapshot) == len(records)
        messages = bridge.drain()
        assert len(messages) == 1
        assert isinstance(messages[0], SnapshotPublished)
        assert messages[0].snapshot is snapshot
        assert messages[0].forest.size() == len(records)

    def test_failed_refresh_keeps_previous_snapshot(self, fake_source):
        store = SnapshotStore()
        bridge = EventBridge()
        scheduler = _scheduler(fake_source, store, bridge)
        good = scheduler.refresh()
        bridge.drain()

        fake_source.fail_enumerate = True
        assert scheduler.refresh() is None

        assert store.current is good
        messages = bridge.drain()
        assert len(messages) == 1
        assert isinstance(messages[0], RefreshFailed)
        assert "permission denied" in messages[0].reason

    def test_cycle_announced_on_bridge(self):
        source = FakeSource([make_record(10, ppid=20), make_record(20, ppid=10)])
        bridge = EventBridge()
        scheduler = _scheduler(source, bridge=bridge)

        scheduler.refresh()

        messages = bridge.drain()
        assert isinstance(messages[0], SnapshotPublished)
        assert isinstance(messages[1], HierarchyWarning)
        assert messages[1].pid == 10

    def test_generations_increase_across_refreshes(self, fake_source):
        scheduler = _scheduler(fake_source)

        generations = [scheduler.refresh().generation for _ in range(5)]

        assert generations == sorted(set(generations))

    def test_refresh_now_skipped_while_paused(self, fake_source):
        state = RunState(paused=True)
        store = SnapshotStore()
        scheduler = _scheduler(fake_source, store=store, state=state)

        assert scheduler.refresh_now() is None
        assert fake_source.enumerate_calls == 0
        assert store.generation == 0

        state.resume()
        assert scheduler.refresh_now().generation == 1
        assert fake_source.enumerate_calls == 1

    def test_loop_keeps_running_after_enumeration_failure(self, fake_source):
        store = SnapshotStore()
        bridge = EventBridge()
        state = RunState()
        scheduler = _scheduler(fake_source, store, bridge, state)
        fake_source.fail_enumerate = True

        scheduler.start()
        try:
            assert _wait_for(lambda: fake_source.enumerate_calls >= 3)
            assert scheduler.is_running
            assert store.generation == 0

            fake_source.fail_enumerate = False
            assert _wait_for(lambda: store.generation >= 1)
        finally:
            scheduler.stop()

    def test_bridge_messages_in_generation_order(self, fake_source):
        bridge = EventBridge()
        state = RunState()
        scheduler = _scheduler(fake_source, bridge=bridge, state=state)

        scheduler.start()
        try:
            assert _wait_for(lambda: bridge.pending() >= 4)
        finally:
            scheduler.stop()

        generations = [
            m.snapshot.generation for m in bridge.drain() if isinstance(m, SnapshotPublished)
        ]
        assert generations == sorted(generations)
        assert len(generations) == len(set(generations))

    def test_pause_skips_enumeration(self, fake_source):
        """While paused, enumerate() is never called."""
        state = RunState()
        scheduler = _scheduler(fake_source, state=state)

        scheduler.start()
        try:
            assert _wait_for(lambda: fake_source.enumerate_calls >= 2)
            state.pause()
            # Let any in-flight iteration finish
            time.sleep(0.3)
            calls_at_pause = fake_source.enumerate_calls

            time.sleep(0.6)
            assert fake_source.enumerate_calls == calls_at_pause

            state.resume()
            assert _wait_for(lambda: fake_source.enumerate_calls > calls_at_pause)
        finally:
            scheduler.stop()

    def test_started_paused_does_not_enumerate(self, fake_source):
        state = RunState(paused=True)
        scheduler = _scheduler(fake_source, state=state)

        scheduler.start()
        try:
            time.sleep(0.4)
            assert fake_source.enumerate_calls == 0
        finally:
            scheduler.stop()

    def test_warm_up_samples_before_first_publish(self, fake_source):
        store = SnapshotStore()
        scheduler = _scheduler(fake_source, store)

        scheduler.start()
        try:
            assert _wait_for(lambda: store.generation >= 1)
            # One priming sample plus at least one published one
            assert fake_source.enumerate_calls >= 2
        finally:
            scheduler.stop()

    def test_stop_ends_thread(self, fake_source):
        scheduler = _scheduler(fake_source)

        scheduler.start()
        assert scheduler.is_running

        scheduler.stop()
        assert _wait_for(lambda: not scheduler.is_running)

    def test_start_idempotent(self, fake_source):
        """Test starting an already running scheduler is safe."""
        scheduler = _scheduler(fake_source)

        scheduler.start()
        thread1 = scheduler._thread

        scheduler.start()  # Should not create a new thread
        thread2 = scheduler._thread

        assert thread1 is thread2
        scheduler.stop()

    def test_daemon_thread(self, fake_source):
        """Test scheduler thread is a daemon thread."""
        scheduler = _scheduler(fake_source)

        scheduler.start()

        try:
            assert scheduler._thread is not None
            assert scheduler._thread.daemon is True
            assert scheduler._thread.name == "RefreshScheduler"
        finally:
            scheduler.stop()
