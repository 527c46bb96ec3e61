"""Process filtering and sorting."""

import re
import threading
from collections.abc import Iterable
from enum import Enum

from proctop.models import FilterKind, FilterState, ProcessRecord, Snapshot


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"
    USER = "user"


_INT_RE = re.compile(r"-?[0-9]+")


def _parse_int(value: str) -> int | None:
    # int() alone would also take "+5", "1_234" and non-ASCII digits
    text = value.strip()
    if not _INT_RE.fullmatch(text):
        return None
    return int(text)


def apply_filter(
    snapshot: Snapshot | Iterable[ProcessRecord], state: FilterState | None
) -> tuple[ProcessRecord, ...]:
    """
    Return the records of a snapshot that match a filter.

    pid and ppid filters need an integer; anything else matches nothing.
    user and status filters are case-sensitive substring matches.
    """
    records = snapshot.records if isinstance(snapshot, Snapshot) else tuple(snapshot)
    if state is None:
        return tuple(records)

    if state.kind in (FilterKind.PID, FilterKind.PPID):
        wanted = _parse_int(state.value)
        if wanted is None:
            return ()
        if state.kind is FilterKind.PID:
            return tuple(r for r in records if r.pid == wanted)
        return tuple(r for r in records if r.ppid == wanted)

    if state.kind is FilterKind.USER:
        return tuple(
            r for r in records if r.username is not None and state.value in r.username
        )
    return tuple(r for r in records if state.value in str(r.status))


def sort_records(
    records: Iterable[ProcessRecord], key: SortKey
) -> list[ProcessRecord]:
    """Sort records for display; CPU and MEM sort descending."""
    key_func = {
        SortKey.CPU: lambda r: r.cpu_percent,
        SortKey.MEM: lambda r: r.memory_rss,
        SortKey.PID: lambda r: r.pid,
        SortKey.USER: lambda r: (r.username or "").lower(),
    }
    reverse = key in (SortKey.CPU, SortKey.MEM)
    return sorted(records, key=key_func[key], reverse=reverse)


class FilterBox:
    """Thread-safe holder for the active FilterState."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: FilterState | None = None

    @property
    def state(self) -> FilterState | None:
        with self._lock:
            return self._state

    @property
    def active(self) -> bool:
        return self.state is not None

    def set(self, kind: FilterKind, value: str) -> FilterState:
        state = FilterState(kind, value)
        with self._lock:
            self._state = state
        return state

    def clear(self) -> None:
        with self._lock:
            self._state = None

    def apply(self, snapshot: Snapshot) -> tuple[ProcessRecord, ...]:
        return apply_filter(snapshot, self.state)


def parse_filter(text: str) -> FilterState | None:
    """
    Parse user input such as ``pid:1234`` or ``user:root``.

    Input without a recognised ``kind:`` prefix is treated as a user filter.
    Blank input yields None.
    """
    text = text.strip()
    if not text:
        return None
    prefix, sep, rest = text.partition(":")
    if sep:
        try:
            return FilterState(FilterKind(prefix.strip().lower()), rest.strip())
        except ValueError:
            pass
    return FilterState(FilterKind.USER, text)
