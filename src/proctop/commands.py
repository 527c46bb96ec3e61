"""Confirmed control actions: terminate, suspend, resume and renice."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from proctop.bridge import CommandFinished, EventBridge
from proctop.errors import (
    PermissionDenied,
    ProcessNotFound,
    ProctopError,
    VerificationMismatch,
    VerificationReadError,
)
from proctop.source import ProcessSource, SignalKind
from proctop.store import SnapshotStore

logger = logging.getLogger(__name__)

NICE_MIN = -20
NICE_MAX = 19


class Action(Enum):
    """Control actions an operator can take on a process."""

    TERMINATE = "terminate"
    SUSPEND = "suspend"
    RESUME = "resume"
    RENICE = "renice"


SIGNALS = {
    Action.TERMINATE: SignalKind.TERMINATE,
    Action.SUSPEND: SignalKind.SUSPEND,
    Action.RESUME: SignalKind.RESUME,
}


class CommandOutcome(Enum):
    """How a control action ended."""

    SUCCESS = "success"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    MISMATCH = "mismatch"
    VERIFY_ERROR = "verify-error"


@dataclass(slots=True, frozen=True)
class PendingCommand:
    """A control action waiting for the operator to confirm it."""

    action: Action
    pid: int
    name: str
    value: int | None = None

    @property
    def command_text(self) -> str:
        if self.action is Action.RENICE:
            return f"renice -n {self.value} -p {self.pid}"
        return f"kill -{SIGNALS[self.action].value} {self.pid}"

    def describe(self) -> str:
        return f"{self.command_text} ({self.name})" if self.name else self.command_text


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Terminal outcome of one confirmed command."""

    command: PendingCommand
    outcome: CommandOutcome
    message: str
    old: int | None = None
    requested: int | None = None
    actual: int | None = None
    escalated: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome is CommandOutcome.SUCCESS

    @property
    def error(self) -> ProctopError | None:
        """The taxonomy error matching this outcome, if it was not a success."""
        pid = self.command.pid
        if self.outcome is CommandOutcome.NOT_FOUND:
            return ProcessNotFound(pid)
        if self.outcome is CommandOutcome.PERMISSION_DENIED:
            return PermissionDenied(pid, self.message)
        if self.outcome is CommandOutcome.MISMATCH:
            return VerificationMismatch(pid, self.old, self.requested, self.actual)
        if self.outcome is CommandOutcome.VERIFY_ERROR:
            return VerificationReadError(pid)
        return None


def needs_escalation(
    requested: int, current: int | None, owner: str | None, invoker: str | None
) -> bool:
    """
    Decide whether a priority change must go through the elevated path.

    Any one of these is enough: a negative value, a process owned by someone
    else (or an unknown owner), or a value lower than the current one.
    """
    return (
        requested < 0
        or owner is None
        or owner != invoker
        or (current is not None and requested < current)
    )


class CommandExecutor:
    """
    Runs confirmed commands on worker threads and reports back on the bridge.

    prepare() builds the confirmation request; confirm() starts a daemon
    worker that runs execute() to completion and submits exactly one
    CommandFinished message. Workers cannot be cancelled.
    """

    def __init__(
        self,
        source: ProcessSource,
        store: SnapshotStore,
        bridge: EventBridge,
        refresh: Callable[[], object] | None = None,
        verify_delay: float = 0.2,
        settle_delay: float = 0.5,
    ) -> None:
        """
        Initialize the CommandExecutor.

        Args:
            source: OS collaborator used for signals and priorities.
            store: Snapshot store, used for owner and name lookups.
            bridge: Where CommandFinished messages go.
            refresh: Called after an action settles so the table catches up.
            verify_delay: Wait before re-reading a changed priority.
            settle_delay: Wait after an action before refreshing.
        """
        self._source = source
        self._store = store
        self._bridge = bridge
        self._refresh = refresh
        self._verify_delay = verify_delay
        self._settle_delay = settle_delay

    def prepare(self, action: Action, pid: int, value: int | None = None) -> PendingCommand:
        """
        Build the confirmation request for an action.

        Raises:
            ValueError: if a renice value is missing or out of range.
        """
        if action is Action.RENICE:
            if value is None or not NICE_MIN <= value <= NICE_MAX:
                raise ValueError(f"Niceness must be between {NICE_MIN} and {NICE_MAX}")
        record = self._store.current.find(pid)
        return PendingCommand(action, pid, record.name if record else "", value)

    def confirm(self, pending: PendingCommand) -> threading.Thread:
        """Start executing a confirmed command off the calling thread."""
        worker = threading.Thread(
            target=self._run,
            args=(pending,),
            daemon=True,
            name=f"Command-{pending.action.value}-{pending.pid}",
        )
        worker.start()
        return worker

    def _run(self, pending: PendingCommand) -> None:
        try:
            result = self.execute(pending)
        except Exception as exc:
            logger.exception("Command %s failed", pending.describe())
            result = CommandResult(
                pending,
                CommandOutcome.PERMISSION_DENIED,
                f"{pending.command_text} failed: {exc}",
            )
        self._bridge.submit(CommandFinished(result))

    def execute(self, pending: PendingCommand) -> CommandResult:
        """Run a command synchronously: check, act, verify, settle."""
        logger.info("Executing %s", pending.describe())
        if not self._source.exists(pending.pid):
            logger.warning("Process %d vanished before %s", pending.pid, pending.action.value)
            return CommandResult(
                pending, CommandOutcome.NOT_FOUND, f"Process {pending.pid} not found"
            )

        if pending.action is Action.RENICE:
            result = self._renice(pending)
        else:
            result = self._signal(pending)

        if result.ok:
            logger.info("%s", result.message)
        else:
            logger.warning("%s", result.message)

        self._settle()
        return result

    def _signal(self, pending: PendingCommand) -> CommandResult:
        kind = SIGNALS[pending.action]
        if self._source.send_signal(pending.pid, kind):
            return CommandResult(
                pending,
                CommandOutcome.SUCCESS,
                f"Sent SIG{kind.value} to {pending.pid} {pending.name}".rstrip(),
            )
        return CommandResult(
            pending,
            CommandOutcome.PERMISSION_DENIED,
            f"Could not send SIG{kind.value} to {pending.pid}",
        )

    def _renice(self, pending: PendingCommand) -> CommandResult:
        pid = pending.pid
        requested = pending.value
        record = self._store.current.find(pid)

        old = self._source.read_priority(pid)
        if old is None and record is not None:
            old = record.nice
        owner = record.username if record else None
        escalate = needs_escalation(requested, old, owner, self._source.current_user())

        change = self._source.set_priority(pid, requested, escalate)
        if not change.ok:
            detail = change.stderr or "priority change rejected"
            return CommandResult(
                pending,
                CommandOutcome.PERMISSION_DENIED,
                f"Renice {pid} to {requested} failed: {detail}",
                old=old,
                requested=requested,
                escalated=escalate,
            )

        time.sleep(self._verify_delay)
        actual = self._source.read_priority(pid)
        if actual is None:
            return CommandResult(
                pending,
                CommandOutcome.VERIFY_ERROR,
                f"Renice {pid}: could not read back the new priority",
                old=old,
                requested=requested,
                escalated=escalate,
            )
        if actual != requested:
            message = f"Renice {pid}: requested {requested}, got {actual} (was {old})"
            if escalate:
                message += "; insufficient privilege is the likely cause"
            return CommandResult(
                pending,
                CommandOutcome.MISMATCH,
                message,
                old=old,
                requested=requested,
                actual=actual,
                escalated=escalate,
            )
        return CommandResult(
            pending,
            CommandOutcome.SUCCESS,
            f"Renice {pid}: {old} -> {actual}",
            old=old,
            requested=requested,
            actual=actual,
            escalated=escalate,
        )

    def _settle(self) -> None:
        if self._refresh is None:
            return
        time.sleep(self._settle_delay)
        self._refresh()
