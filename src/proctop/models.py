"""Data models for proctop."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of a single process as sampled from the OS."""

    pid: int
    ppid: int | None
    username: str | None
    status: str  # 'running', 'sleeping', 'stopped', 'zombie', etc.
    cpu_percent: float  # 0.0 - 100.0 * core_count
    memory_rss: int  # Bytes
    name: str
    started_at: float  # Epoch seconds
    nice: int
    command_line: str = ""


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Point-in-time capture of the process table."""

    records: tuple[ProcessRecord, ...]
    captured_at: float
    generation: int

    def __len__(self) -> int:
        return len(self.records)

    def pids(self) -> set[int]:
        """Get the set of pids in this snapshot."""
        return {record.pid for record in self.records}

    def find(self, pid: int) -> ProcessRecord | None:
        """Look up a record by pid."""
        for record in self.records:
            if record.pid == pid:
                return record
        return None


EMPTY_SNAPSHOT = Snapshot(records=(), captured_at=0.0, generation=0)


class FilterKind(Enum):
    """Kinds of process filter."""

    PID = "pid"
    PPID = "ppid"
    USER = "user"
    STATUS = "status"


@dataclass(slots=True, frozen=True)
class FilterState:
    """An active filter: a kind and the raw text the user typed."""

    kind: FilterKind
    value: str

    def describe(self) -> str:
        return f"{self.kind.value}={self.value}"


@dataclass(slots=True)
class ProcessTreeNode:
    """A process plus its children, ordered ascending by pid."""

    record: ProcessRecord
    children: list["ProcessTreeNode"] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.record.pid

    def walk(self, depth: int = 0) -> Iterator[tuple[int, ProcessRecord]]:
        """Yield (depth, record) pairs in pre-order."""
        stack = [(depth, self)]
        while stack:
            level, node = stack.pop()
            yield level, node.record
            for child in reversed(node.children):
                stack.append((level + 1, child))
