"""One-shot process table output: CSV export and plain-text listing."""

import csv
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from proctop.filters import SortKey, sort_records
from proctop.models import ProcessRecord

CSV_HEADER = ["PID", "Process Name", "CPU (%)", "Memory (KB)", "Status"]


def export_csv(path: str | Path, records: Iterable[ProcessRecord]) -> int:
    """
    Write the process table to a CSV file, busiest CPU first.

    Returns:
        Number of process rows written.

    Raises:
        ValueError: if the path does not end in ``.csv``.
    """
    path = Path(path)
    if path.suffix != ".csv":
        raise ValueError("Please provide a .csv file path")

    rows = sort_records(records, SortKey.CPU)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for proc in rows:
            writer.writerow(
                [
                    proc.pid,
                    proc.name,
                    f"{proc.cpu_percent:.2f}",
                    proc.memory_rss // 1024,
                    proc.status,
                ]
            )
    return len(rows)


def print_table(records: Iterable[ProcessRecord], out: TextIO) -> None:
    """Print a compact process listing, busiest CPU first."""
    out.write(f"{'PID':>7} {'CPU%':>6} {'RES(KB)':>10} {'STATUS':<9} NAME\n")
    for proc in sort_records(records, SortKey.CPU):
        out.write(
            f"{proc.pid:>7} {proc.cpu_percent:6.2f} {proc.memory_rss // 1024:>10} "
            f"{proc.status:<9} {proc.name}\n"
        )
