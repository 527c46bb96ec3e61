"""OS process source backed by psutil."""

import logging
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import psutil

from proctop.errors import EnumerationError
from proctop.models import ProcessRecord

logger = logging.getLogger(__name__)

# Attributes fetched per process in a single process_iter pass
PROCESS_ATTRS = [
    "pid",
    "ppid",
    "name",
    "username",
    "status",
    "cpu_percent",
    "memory_info",
    "create_time",
    "nice",
    "cmdline",
]


class SignalKind(Enum):
    """Signals the monitor can deliver to a process."""

    TERMINATE = "TERM"
    SUSPEND = "STOP"
    RESUME = "CONT"


@dataclass(slots=True, frozen=True)
class PriorityChange:
    """Result of asking the OS to change a niceness value."""

    ok: bool
    stderr: str = ""


class ProcessSource(Protocol):
    """Everything the monitoring core needs from the operating system."""

    def enumerate(self) -> list[ProcessRecord]: ...

    def exists(self, pid: int) -> bool: ...

    def send_signal(self, pid: int, kind: SignalKind) -> bool: ...

    def read_priority(self, pid: int) -> int | None: ...

    def set_priority(self, pid: int, value: int, escalate: bool) -> PriorityChange: ...

    def current_user(self) -> str | None: ...


class PsutilProcessSource:
    """
    ProcessSource implementation using psutil.

    Unprivileged priority changes go through psutil directly; escalated ones
    shell out to ``sudo -n renice`` so that a missing sudo rule fails fast
    instead of prompting on the terminal the UI owns.
    """

    def __init__(self, sudo_timeout: float = 10.0) -> None:
        self._sudo_timeout = sudo_timeout

    def enumerate(self) -> list[ProcessRecord]:
        """
        Collect records for all running processes.

        Raises:
            EnumerationError: if the process table cannot be listed at all.
        """
        records: list[ProcessRecord] = []
        try:
            for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
                try:
                    with proc.oneshot():
                        records.append(self._to_record(proc.info))
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    # Died mid-poll or unreadable; skip it
                    continue
        except (psutil.Error, OSError) as exc:
            raise EnumerationError(f"Could not list processes: {exc}") from exc
        return records

    @staticmethod
    def _to_record(info: dict) -> ProcessRecord:
        cmdline = info.get("cmdline") or []
        name = info.get("name") or ""
        mem_info = info.get("memory_info")
        ppid = info.get("ppid")
        return ProcessRecord(
            pid=info.get("pid", 0),
            ppid=ppid if ppid else None,
            username=info.get("username"),
            status=info.get("status") or "?",
            cpu_percent=info.get("cpu_percent") or 0.0,
            memory_rss=mem_info.rss if mem_info else 0,
            name=name,
            started_at=info.get("create_time") or 0.0,
            nice=info.get("nice") or 0,
            command_line=" ".join(cmdline) if cmdline else name,
        )

    def exists(self, pid: int) -> bool:
        return psutil.pid_exists(pid)

    def send_signal(self, pid: int, kind: SignalKind) -> bool:
        """Deliver a signal, returning whether it was sent."""
        try:
            proc = psutil.Process(pid)
            if kind is SignalKind.TERMINATE:
                proc.terminate()
            elif kind is SignalKind.SUSPEND:
                proc.suspend()
            else:
                proc.resume()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
            logger.warning("SIG%s to %d failed: %s", kind.value, pid, exc)
            return False
        return True

    def read_priority(self, pid: int) -> int | None:
        try:
            return psutil.Process(pid).nice()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def set_priority(self, pid: int, value: int, escalate: bool) -> PriorityChange:
        """Change the niceness of a process, optionally through sudo."""
        if escalate:
            return self._sudo_renice(pid, value)
        try:
            psutil.Process(pid).nice(value)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
            return PriorityChange(ok=False, stderr=str(exc))
        return PriorityChange(ok=True)

    def _sudo_renice(self, pid: int, value: int) -> PriorityChange:
        cmd = ["sudo", "-n", "renice", "-n", str(value), "-p", str(pid)]
        logger.info("Running %s", " ".join(cmd))
        try:
            res = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self._sudo_timeout
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            return PriorityChange(ok=False, stderr=str(exc))
        return PriorityChange(ok=res.returncode == 0, stderr=res.stderr.strip())

    def current_user(self) -> str | None:
        try:
            return psutil.Process().username()
        except psutil.Error:
            return None


def sample_twice(source: ProcessSource, delay: float = 1.0) -> list[ProcessRecord]:
    """
    Enumerate twice with a delay so CPU percentages are meaningful.

    psutil reports 0.0 for a process the first time it is sampled.
    """
    source.enumerate()
    time.sleep(delay)
    return source.enumerate()
