"""Event bridge between background threads and the rendering loop."""

from dataclasses import dataclass
from queue import Empty, Queue
from typing import TYPE_CHECKING, Union

from proctop.models import Snapshot
from proctop.tree import Forest

if TYPE_CHECKING:
    from proctop.commands import CommandResult


@dataclass(slots=True, frozen=True)
class SnapshotPublished:
    """A new snapshot is available in the store, with its process forest."""

    snapshot: Snapshot
    forest: Forest


@dataclass(slots=True, frozen=True)
class RefreshFailed:
    """The OS source could not be enumerated; the old snapshot is kept."""

    reason: str


@dataclass(slots=True, frozen=True)
class CommandFinished:
    """A confirmed control action ran to completion."""

    result: "CommandResult"


@dataclass(slots=True, frozen=True)
class HierarchyWarning:
    """The tree builder demoted a node to root because of a parent cycle."""

    pid: int
    message: str


Message = Union[SnapshotPublished, RefreshFailed, CommandFinished, HierarchyWarning]


class EventBridge:
    """
    Single-consumer message queue drained by the UI loop.

    Producers on any thread call submit(); only the rendering loop calls
    drain(). Messages come out in the order they went in.
    """

    def __init__(self) -> None:
        self._queue: Queue[Message] = Queue()

    def submit(self, message: Message) -> None:
        self._queue.put(message)

    def drain(self) -> list[Message]:
        """Take every pending message without blocking."""
        messages: list[Message] = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except Empty:
                break
        return messages

    def pending(self) -> int:
        return self._queue.qsize()
