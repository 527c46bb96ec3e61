"""Command line entry point for proctop."""

import argparse
import logging
import platform
import sys
from typing import TextIO

from textual.logging import TextualHandler

from proctop.app import ProctopApp
from proctop.bridge import EventBridge
from proctop.commands import Action, CommandExecutor, CommandOutcome
from proctop.config import MonitorConfig
from proctop.errors import EnumerationError
from proctop.export import export_csv, print_table
from proctop.source import ProcessSource, PsutilProcessSource, sample_twice
from proctop.store import SnapshotStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="proctop", description="Live process monitor")
    parser.add_argument(
        "--interval", type=float, default=1.0, help="seconds between refreshes (default 1.0)"
    )
    parser.add_argument("--paused", action="store_true", help="start with refresh paused")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("tui", help="interactive monitor (default)")
    ptable = sub.add_parser("ptable", help="print the process table or export it to CSV")
    ptable.add_argument("path", nargs="?", help="CSV file to write")
    kill = sub.add_parser("kill", help="terminate a process by pid")
    kill.add_argument("pid", type=int)
    sub.add_parser("os", help="show the operating system name")
    return parser


def run_ptable(source: ProcessSource, path: str | None, out: TextIO, delay: float = 1.0) -> int:
    records = sample_twice(source, delay)
    if path is None:
        print_table(records, out)
        return 0
    try:
        export_csv(path, records)
    except ValueError as exc:
        print(f"Error: {exc}.", file=sys.stderr)
        return 2
    except OSError as exc:
        print(f"Failed to create file {path}: {exc}", file=sys.stderr)
        return 1
    print(f"Exported process table to: {path}", file=out)
    return 0


def run_kill(source: ProcessSource, pid: int, out: TextIO) -> int:
    store = SnapshotStore()
    store.publish(source.enumerate())
    executor = CommandExecutor(source, store, EventBridge())
    result = executor.execute(executor.prepare(Action.TERMINATE, pid))

    if result.outcome is CommandOutcome.NOT_FOUND:
        print("The process was not found, recheck the PID", file=out)
        return 1
    if not result.ok:
        print(result.message, file=out)
        return 1
    print(f"{result.command.name} was killed, PID: {pid}", file=out)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for proctop."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, handlers=[TextualHandler()])

    if args.command == "os":
        print(f"Your OS is: {platform.system().lower()}")
        return 0

    source = PsutilProcessSource()
    try:
        if args.command == "ptable":
            return run_ptable(source, args.path, sys.stdout)
        if args.command == "kill":
            return run_kill(source, args.pid, sys.stdout)
    except EnumerationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    config = MonitorConfig(interval=args.interval, start_paused=args.paused)
    app = ProctopApp(source=source, config=config)
    try:
        app.run()
    except Exception:
        logger.exception("Could not start the display")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
