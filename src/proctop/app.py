"""proctop - Main Textual application."""

import asyncio
import logging
import time

from textual import on
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Input, Static

from proctop.bridge import (
    CommandFinished,
    EventBridge,
    HierarchyWarning,
    Message,
    RefreshFailed,
    SnapshotPublished,
)
from proctop.commands import Action, CommandExecutor, CommandOutcome, PendingCommand
from proctop.config import MonitorConfig
from proctop.filters import FilterBox, SortKey, parse_filter, sort_records
from proctop.models import EMPTY_SNAPSHOT, ProcessRecord, Snapshot
from proctop.monitor import RefreshScheduler, RunState
from proctop.source import ProcessSource, PsutilProcessSource
from proctop.store import SnapshotStore
from proctop.tree import Forest, build_forest

logger = logging.getLogger(__name__)


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_start(started_at: float) -> str:
    """Format a process start time as HH:MM, or the date if not today."""
    if started_at <= 0:
        return "?"
    started = time.localtime(started_at)
    if time.strftime("%Y%m%d", started) == time.strftime("%Y%m%d"):
        return time.strftime("%H:%M", started)
    return time.strftime("%b%d", started)


class HeaderStats(Static):
    """Header line showing snapshot, filter and view state."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    summary: str = ""

    def update_stats(
        self,
        snapshot: Snapshot,
        shown: int,
        filter_text: str | None,
        sort_key: SortKey,
        tree_mode: bool,
        paused: bool,
    ) -> None:
        """Update the header from the current view state."""
        parts = [
            f"Tasks: {shown}/{len(snapshot)}",
            f"Gen: {snapshot.generation}",
            f"View: {'tree' if tree_mode else 'sort ' + sort_key.value.upper()}",
        ]
        if filter_text:
            parts.append(f"Filter: {filter_text}")
        if paused:
            parts.append("PAUSED")
        self.summary = "   ".join(parts)
        self.update(self.summary)


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: list[int] = []
        self._sort_key: SortKey = SortKey.CPU

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        self._sort_key = keys[(current_index + 1) % len(keys)]
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("PPID", key="ppid", width=8)
        table.add_column("USER", key="user", width=10)
        table.add_column("NI", key="nice", width=4)
        table.add_column("S", key="status", width=9)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("RES", key="rss", width=8)
        table.add_column("START", key="start", width=6)
        table.add_column("Command", key="command")

    def selected_pid(self) -> int | None:
        """Get the pid under the cursor, if any."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return int(row_key.value)

    def update_rows(self, rows: list[tuple[int, ProcessRecord]], tree_mode: bool) -> None:
        """
        Replace the table contents with (depth, record) rows.

        The cursor stays on the same pid when that pid is still shown.
        """
        table = self.query_one("#process-table", DataTable)
        selected = self.selected_pid()

        table.clear()
        pids: list[int] = []
        for depth, proc in rows:
            name = proc.command_line or proc.name
            if tree_mode and depth:
                name = "  " * (depth - 1) + "└─ " + name
            table.add_row(
                str(proc.pid),
                str(proc.ppid) if proc.ppid is not None else "-",
                (proc.username or "?")[:10],
                str(proc.nice),
                proc.status,
                f"{proc.cpu_percent:5.1f}",
                format_bytes(proc.memory_rss),
                format_start(proc.started_at),
                name[:80],
                key=str(proc.pid),
            )
            pids.append(proc.pid)

        self._current_pids = pids
        if selected is not None and selected in pids:
            table.move_cursor(row=pids.index(selected))


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no confirmation for a control action."""

    DEFAULT_CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 64;
        height: auto;
        border: thick $warning;
        background: $surface;
        padding: 1 2;
    }

    #confirm-buttons {
        height: auto;
        margin-top: 1;
    }
    """

    BINDINGS = [
        ("y", "confirm", "Yes"),
        ("n", "cancel", "No"),
        ("escape", "cancel", "No"),
    ]

    def __init__(self, pending: PendingCommand) -> None:
        super().__init__()
        self.pending = pending

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(f"Run {self.pending.describe()}?", id="confirm-prompt", markup=False),
            Horizontal(
                Button("Yes", variant="error", id="confirm-yes"),
                Button("No", variant="primary", id="confirm-no"),
                id="confirm-buttons",
            ),
            id="confirm-dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-yes")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class ReniceScreen(ModalScreen[int | None]):
    """Prompt for a new niceness value."""

    DEFAULT_CSS = """
    ReniceScreen {
        align: center middle;
    }

    #renice-dialog {
        width: 50;
        height: auto;
        border: thick $primary;
        background: $surface;
        padding: 1 2;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, pid: int, current: int) -> None:
        super().__init__()
        self._pid = pid
        self._current = current

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(f"New niceness for {self._pid} (now {self._current}, -20..19)"),
            Input(value=str(self._current), id="renice-input"),
            id="renice-dialog",
        )

    def on_mount(self) -> None:
        self.query_one("#renice-input", Input).focus()

    @on(Input.Submitted, "#renice-input")
    def submit_value(self, event: Input.Submitted) -> None:
        event.stop()
        try:
            value = int(event.value.strip())
        except ValueError:
            self.notify(f"Not a number: {event.value!r}", severity="error")
            return
        self.dismiss(value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ProctopApp(App):
    """Main proctop application."""

    TITLE = "proctop"
    SUB_TITLE = "Live Process Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
    }

    #filter-input {
        dock: bottom;
        display: none;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("t", "toggle_tree", "Tree"),
        ("p", "toggle_pause", "Pause"),
        ("slash", "search", "Filter"),
        ("escape", "clear_filter", "Clear filter"),
        ("k", "terminate", "Kill"),
        ("s", "suspend", "Stop"),
        ("r", "resume", "Cont"),
        ("n", "renice", "Nice"),
    ]

    def __init__(
        self,
        source: ProcessSource | None = None,
        config: MonitorConfig | None = None,
    ) -> None:
        """Initialize the ProctopApp."""
        super().__init__()
        self._config = config or MonitorConfig()
        self._source = source or PsutilProcessSource()
        self._store = SnapshotStore()
        self._bridge = EventBridge()
        self._state = RunState(paused=self._config.start_paused)
        self._filter_box = FilterBox()
        self._scheduler = RefreshScheduler(
            self._source,
            self._store,
            self._bridge,
            self._state,
            interval=self._config.interval,
            warmup_delay=self._config.warmup_delay,
        )
        self._executor = CommandExecutor(
            self._source,
            self._store,
            self._bridge,
            refresh=self._scheduler.refresh_now,
            verify_delay=self._config.verify_delay,
            settle_delay=self._config.settle_delay,
        )
        self._snapshot: Snapshot = EMPTY_SNAPSHOT
        self._forest = Forest()
        self._tree_mode = False
        self._reported_cycles: set[int] = set()
        self._refresh_failing = False

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Input(
            placeholder="Filter: pid:N  ppid:N  user:NAME  status:TEXT",
            id="filter-input",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Start the refresh scheduler when the app is mounted."""
        self._scheduler.start()
        # Set up a timer to drain the event bridge
        self.set_interval(self._config.ui_poll, self._check_for_updates)
        self._render_view()

    def on_unmount(self) -> None:
        self._scheduler.stop()

    def _check_for_updates(self) -> None:
        """Apply every pending bridge message, then redraw once."""
        dirty = False
        for message in self._bridge.drain():
            dirty = self._apply_message(message) or dirty
        if dirty:
            self._render_view()

    def _apply_message(self, message: Message) -> bool:
        """Apply one message; return True if the table needs redrawing."""
        if isinstance(message, SnapshotPublished):
            # Never step back to an older generation
            if message.snapshot.generation <= self._snapshot.generation:
                return False
            self._snapshot = message.snapshot
            self._forest = message.forest
            self._refresh_failing = False
            return True

        if isinstance(message, RefreshFailed):
            # One notice per run of failures
            if not self._refresh_failing:
                self._refresh_failing = True
                self.notify(f"Refresh failed, showing last data: {message.reason}", severity="warning")
        elif isinstance(message, HierarchyWarning):
            if message.pid not in self._reported_cycles:
                self._reported_cycles.add(message.pid)
                self.notify(message.message, severity="warning")
        elif isinstance(message, CommandFinished):
            result = message.result
            if result.ok:
                self.notify(result.message)
            else:
                severity = "warning" if result.outcome is CommandOutcome.MISMATCH else "error"
                self.notify(result.message, severity=severity)
        return False

    def _current_rows(self) -> list[tuple[int, ProcessRecord]]:
        records = self._filter_box.apply(self._snapshot)
        if self._tree_mode:
            # The scheduler's forest covers the whole snapshot; rebuild if filtered
            forest = self._forest if not self._filter_box.active else build_forest(records)
            return list(forest.rows())
        table = self.query_one(ProcessTable)
        return [(0, proc) for proc in sort_records(records, table.sort_key)]

    def _render_view(self) -> None:
        """Render the filtered flat or tree view of the latest snapshot."""
        process_table = self.query_one(ProcessTable)
        rows = self._current_rows()
        process_table.update_rows(rows, self._tree_mode)

        state = self._filter_box.state
        self.query_one("#header-stats", HeaderStats).update_stats(
            self._snapshot,
            len(rows),
            state.describe() if state else None,
            process_table.sort_key,
            self._tree_mode,
            self._state.is_paused,
        )

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")
        self._render_view()

    def action_toggle_tree(self) -> None:
        self._tree_mode = not self._tree_mode
        self._render_view()

    def action_toggle_pause(self) -> None:
        paused = self._state.toggle_pause()
        self.notify("Refresh paused" if paused else "Refresh resumed")
        self._render_view()

    def action_search(self) -> None:
        """Show the filter input."""
        filter_input = self.query_one("#filter-input", Input)
        state = self._filter_box.state
        filter_input.value = f"{state.kind.value}:{state.value}" if state else ""
        filter_input.display = True
        filter_input.focus()

    @on(Input.Submitted, "#filter-input")
    def apply_filter_input(self, event: Input.Submitted) -> None:
        state = parse_filter(event.value)
        if state is None:
            self._filter_box.clear()
        else:
            self._filter_box.set(state.kind, state.value)
        self._hide_filter_input()
        self._render_view()

    def action_clear_filter(self) -> None:
        self._filter_box.clear()
        self._hide_filter_input()
        self._render_view()

    def _hide_filter_input(self) -> None:
        filter_input = self.query_one("#filter-input", Input)
        filter_input.display = False
        self.query_one("#process-table", DataTable).focus()

    def _selected_pid(self) -> int | None:
        pid = self.query_one(ProcessTable).selected_pid()
        if pid is None:
            self.notify("No process selected", severity="warning")
        return pid

    def _ask_and_run(self, pending: PendingCommand) -> None:
        """Show the confirmation dialog; run the command only on yes."""

        def on_answer(confirmed: bool | None) -> None:
            if confirmed:
                logger.info("Confirmed %s", pending.describe())
                self._executor.confirm(pending)
            else:
                logger.info("Cancelled %s", pending.describe())

        self.push_screen(ConfirmScreen(pending), on_answer)

    def _signal_action(self, action: Action) -> None:
        pid = self._selected_pid()
        if pid is not None:
            self._ask_and_run(self._executor.prepare(action, pid))

    def action_terminate(self) -> None:
        self._signal_action(Action.TERMINATE)

    def action_suspend(self) -> None:
        self._signal_action(Action.SUSPEND)

    def action_resume(self) -> None:
        self._signal_action(Action.RESUME)

    def action_renice(self) -> None:
        pid = self._selected_pid()
        if pid is None:
            return
        record = self._snapshot.find(pid)
        current = record.nice if record else 0

        def on_value(value: int | None) -> None:
            if value is None:
                return
            try:
                pending = self._executor.prepare(Action.RENICE, pid, value)
            except ValueError as exc:
                self.notify(str(exc), severity="error")
                return
            self._ask_and_run(pending)

        self.push_screen(ReniceScreen(pid, current), on_value)

    async def action_quit(self) -> None:
        """Stop the scheduler, give it a moment to notice, then exit."""
        self._scheduler.stop()
        await asyncio.sleep(self._config.shutdown_grace)
        self.exit()
