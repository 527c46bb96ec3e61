"""Tests for CSV export and the one-shot CLI commands."""

import csv
import io

import pytest

from conftest import FakeSource
from proctop.cli import build_parser, main, run_kill, run_ptable
from proctop.export import CSV_HEADER, export_csv, print_table
from proctop.source import SignalKind


def test_export_csv_writes_header_and_rows(tmp_path, records):
    path = tmp_path / "procs.csv"

    written = export_csv(path, records)

    with path.open(newline="") as f:
        rows = list(csv.reader(f))
    assert written == len(records)
    assert rows[0] == CSV_HEADER
    # Busiest CPU first
    assert rows[1] == ["101", "top", "7.50", "101", "sleeping"]
    assert [row[0] for row in rows[1:]] == ["101", "102", "100", "1", "50"]


def test_export_csv_rejects_other_extensions(tmp_path, records):
    with pytest.raises(ValueError):
        export_csv(tmp_path / "procs.txt", records)
    assert not (tmp_path / "procs.txt").exists()


def test_print_table(records):
    out = io.StringIO()

    print_table(records, out)

    lines = out.getvalue().splitlines()
    assert lines[0].split() == ["PID", "CPU%", "RES(KB)", "STATUS", "NAME"]
    assert lines[1].split()[0] == "101"
    assert len(lines) == len(records) + 1


def test_run_ptable_exports(tmp_path, fake_source):
    out = io.StringIO()
    path = tmp_path / "out.csv"

    code = run_ptable(fake_source, str(path), out, delay=0.0)

    assert code == 0
    assert path.exists()
    assert "Exported process table to:" in out.getvalue()
    # Warm-up sample plus the one that was written
    assert fake_source.enumerate_calls == 2


def test_run_ptable_bad_extension(tmp_path, fake_source, capsys):
    code = run_ptable(fake_source, str(tmp_path / "out.json"), io.StringIO(), delay=0.0)

    assert code == 2
    assert ".csv" in capsys.readouterr().err


def test_run_kill(fake_source):
    out = io.StringIO()

    assert run_kill(fake_source, 101, out) == 0

    assert fake_source.signals == [(101, SignalKind.TERMINATE)]
    assert "top was killed, PID: 101" in out.getvalue()


def test_run_kill_not_found():
    source = FakeSource([])
    out = io.StringIO()

    assert run_kill(source, 999, out) == 1

    assert source.signals == []
    assert "not found" in out.getvalue()


def test_parser_defaults():
    args = build_parser().parse_args([])

    assert args.command is None
    assert args.interval == 1.0
    assert args.paused is False


def test_parser_subcommands():
    parser = build_parser()

    assert parser.parse_args(["kill", "42"]).pid == 42
    assert parser.parse_args(["ptable", "x.csv"]).path == "x.csv"
    assert parser.parse_args(["--interval", "2", "tui"]).interval == 2.0


def test_main_os(capsys):
    assert main(["os"]) == 0
    assert capsys.readouterr().out.startswith("Your OS is: ")
