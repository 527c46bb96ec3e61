"""Shared fixtures: an in-memory OS process source."""

import threading

import pytest

from proctop.errors import EnumerationError
from proctop.models import ProcessRecord
from proctop.source import PriorityChange, SignalKind


def make_record(
    pid: int,
    ppid: int | None = None,
    username: str | None = "alice",
    status: str = "sleeping",
    cpu_percent: float = 0.0,
    nice: int = 0,
    name: str | None = None,
) -> ProcessRecord:
    """Build a ProcessRecord with sensible defaults."""
    return ProcessRecord(
        pid=pid,
        ppid=ppid,
        username=username,
        status=status,
        cpu_percent=cpu_percent,
        memory_rss=pid * 1024,
        name=name or f"proc{pid}",
        started_at=1_700_000_000.0,
        nice=nice,
        command_line=f"/usr/bin/{name or f'proc{pid}'}",
    )


class FakeSource:
    """
    ProcessSource double with call counters.

    set_priority stores the requested value unless `apply_priority` is False,
    which models an OS that accepts the call but leaves the niceness alone.
    """

    def __init__(self, records: list[ProcessRecord] | None = None, user: str = "alice") -> None:
        self._lock = threading.Lock()
        self.records = list(records or [])
        self.user = user
        self.priorities = {r.pid: r.nice for r in self.records}
        self.enumerate_calls = 0
        self.signals: list[tuple[int, SignalKind]] = []
        self.priority_calls: list[tuple[int, int, bool]] = []
        self.fail_enumerate = False
        self.signal_result = True
        self.apply_priority = True
        self.priority_result = PriorityChange(ok=True)
        self.read_fails_after_set = False

    def enumerate(self) -> list[ProcessRecord]:
        with self._lock:
            self.enumerate_calls += 1
            if self.fail_enumerate:
                raise EnumerationError("permission denied reading /proc")
            return list(self.records)

    def exists(self, pid: int) -> bool:
        return any(r.pid == pid for r in self.records)

    def send_signal(self, pid: int, kind: SignalKind) -> bool:
        self.signals.append((pid, kind))
        return self.signal_result

    def read_priority(self, pid: int) -> int | None:
        if self.read_fails_after_set and self.priority_calls:
            return None
        return self.priorities.get(pid)

    def set_priority(self, pid: int, value: int, escalate: bool) -> PriorityChange:
        self.priority_calls.append((pid, value, escalate))
        if self.priority_result.ok and self.apply_priority:
            self.priorities[pid] = value
        return self.priority_result

    def current_user(self) -> str | None:
        return self.user


@pytest.fixture
def records() -> list[ProcessRecord]:
    """A small process table: init, a shell with two children, a root daemon."""
    return [
        make_record(1, ppid=0, username="root", name="init", cpu_percent=0.5),
        make_record(100, ppid=1, name="bash", cpu_percent=1.0),
        make_record(102, ppid=100, name="vim", cpu_percent=3.0, status="running"),
        make_record(101, ppid=100, name="top", cpu_percent=7.5),
        make_record(50, ppid=1, username="root", name="sshd", cpu_percent=0.1, nice=-5),
    ]


@pytest.fixture
def fake_source(records: list[ProcessRecord]) -> FakeSource:
    return FakeSource(records)
