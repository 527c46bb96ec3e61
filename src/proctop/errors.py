"""Error taxonomy for proctop.

None of these are fatal: they are recovered where they occur and surfaced to
the user as a notice.
"""


class ProctopError(Exception):
    """Base class for all proctop errors."""


class EnumerationError(ProctopError):
    """The OS source failed to list processes."""


class ProcessNotFound(ProctopError):
    """The target process vanished before an action could run."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Process {pid} not found")
        self.pid = pid


class PermissionDenied(ProctopError):
    """A signal or priority change was rejected by the OS."""

    def __init__(self, pid: int, detail: str = "") -> None:
        message = f"Permission denied for process {pid}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.pid = pid
        self.detail = detail


class VerificationMismatch(ProctopError):
    """The value read back after a change differs from the requested one."""

    def __init__(self, pid: int, old: int | None, requested: int, actual: int) -> None:
        super().__init__(
            f"Priority of {pid} is {actual} after requesting {requested} (was {old})"
        )
        self.pid = pid
        self.old = old
        self.requested = requested
        self.actual = actual


class VerificationReadError(ProctopError):
    """The state of a process could not be re-read after a change."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Could not re-read priority of process {pid}")
        self.pid = pid


class MalformedHierarchy(ProctopError):
    """A parent cycle was found while building the process tree."""

    def __init__(self, pid: int, cycle: tuple[int, ...] = ()) -> None:
        path = " -> ".join(str(p) for p in cycle) if cycle else str(pid)
        super().__init__(f"Parent cycle at process {pid} ({path}); shown as root")
        self.pid = pid
        self.cycle = cycle
