"""Process hierarchy reconstruction."""

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from proctop.errors import MalformedHierarchy
from proctop.models import ProcessRecord, ProcessTreeNode, Snapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Forest:
    """Root nodes of a process hierarchy plus any cycles found building it."""

    roots: list[ProcessTreeNode] = field(default_factory=list)
    problems: list[MalformedHierarchy] = field(default_factory=list)

    def rows(self) -> Iterator[tuple[int, ProcessRecord]]:
        """Flatten the forest into (depth, record) pairs in display order."""
        for root in self.roots:
            yield from root.walk()

    def size(self) -> int:
        return sum(1 for _ in self.rows())


def build_forest(source: Snapshot | Iterable[ProcessRecord]) -> Forest:
    """
    Build a parent/child forest from a flat list of records.

    Nodes live in a pid-indexed arena and are linked by walking parent groups
    with a visited set, so a malformed parent graph cannot recurse forever.
    A record is a root when its parent is missing, zero, itself, or not in
    the input. Records that only reach each other through a parent cycle are
    demoted to roots (lowest pid of the cycle first) and reported.

    Roots and every child list are sorted ascending by pid.
    """
    records = source.records if isinstance(source, Snapshot) else tuple(source)

    by_pid: dict[int, ProcessRecord] = {}
    for record in records:
        by_pid.setdefault(record.pid, record)

    nodes = {pid: ProcessTreeNode(record) for pid, record in by_pid.items()}
    groups: dict[int, list[int]] = defaultdict(list)
    root_pids: list[int] = []
    for pid in sorted(by_pid):
        parent = by_pid[pid].ppid
        if not parent or parent == pid or parent not in by_pid:
            root_pids.append(pid)
        else:
            groups[parent].append(pid)

    visited: set[int] = set()

    def attach(root_pid: int) -> None:
        visited.add(root_pid)
        stack = [root_pid]
        while stack:
            pid = stack.pop()
            # Popping the group consumes it; each edge is followed once
            for child in groups.pop(pid, ()):
                if child in visited:
                    continue
                visited.add(child)
                nodes[pid].children.append(nodes[child])
                stack.append(child)

    for pid in root_pids:
        attach(pid)

    forest = Forest(roots=[nodes[pid] for pid in root_pids])

    # Anything not reached yet hangs off a parent cycle
    for pid in sorted(by_pid):
        if pid in visited:
            continue
        cycle = _trace_cycle(pid, by_pid, visited)
        demoted = min(cycle) if cycle else pid
        parent = by_pid[demoted].ppid
        if parent in groups and demoted in groups[parent]:
            groups[parent].remove(demoted)
        attach(demoted)
        forest.roots.append(nodes[demoted])

        problem = MalformedHierarchy(demoted, cycle)
        logger.warning("%s", problem)
        forest.problems.append(problem)

    forest.roots.sort(key=lambda node: node.pid)
    return forest


def _trace_cycle(
    start: int, by_pid: dict[int, ProcessRecord], visited: set[int]
) -> tuple[int, ...]:
    """Follow parent links from start until a pid repeats; return the loop."""
    index: dict[int, int] = {}
    path: list[int] = []
    pid: int | None = start
    while pid is not None and pid in by_pid and pid not in visited and pid not in index:
        index[pid] = len(path)
        path.append(pid)
        pid = by_pid[pid].ppid
    if pid is None or pid not in index:
        return ()
    return tuple(path[index[pid]:])
