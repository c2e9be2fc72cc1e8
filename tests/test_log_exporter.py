"""Unit tests for multi-format log export."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import load_workbook

from route_enricher import log_exporter
from route_enricher.log_exporter import (
    UnknownLogFormatError,
    export_records,
    normalize_extensions,
)

A = {"timestamp": "2026-01-01T10:00:00", "message": "first"}
B = {"timestamp": "2026-01-01T11:00:00", "message": "second"}


def test_normalize_extensions_dedupes() -> None:
    assert normalize_extensions(["CSV", ".csv", "json", " txt ", "json"]) == ["csv", "json", "txt"]


def test_export_returns_one_path_per_extension(tmp_path: Path) -> None:
    written = export_records([A], tmp_path / "logs" / "run", ["csv", "json", "txt", "xlsx", "CSV"])
    assert [p.name for p in written] == ["run.csv", "run.json", "run.txt", "run.xlsx"]
    assert all(p.exists() for p in written)


def test_unknown_extension_raises_before_writing(tmp_path: Path) -> None:
    with pytest.raises(UnknownLogFormatError):
        export_records([A], tmp_path / "run", ["csv", "pdf"])
    assert not (tmp_path / "run.csv").exists()


def test_csv_is_semicolon_delimited_with_single_header(tmp_path: Path) -> None:
    prefix = tmp_path / "run"
    export_records([A], prefix, ["csv"], append=True)
    export_records([B], prefix, ["csv"], append=True)

    lines = (tmp_path / "run.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0] == "timestamp;message"
    assert lines.count("timestamp;message") == 1
    df = pd.read_csv(tmp_path / "run.csv", sep=";")
    assert df["message"].tolist() == ["first", "second"]


def test_csv_overwrite_replaces_content(tmp_path: Path) -> None:
    prefix = tmp_path / "run"
    export_records([A], prefix, ["csv"])
    export_records([B], prefix, ["csv"])
    df = pd.read_csv(tmp_path / "run.csv", sep=";")
    assert df["message"].tolist() == ["second"]


def test_json_append_keeps_both_batches(tmp_path: Path) -> None:
    prefix = tmp_path / "run"
    export_records([A], prefix, ["json"], append=True)
    export_records([B], prefix, ["json"], append=True)

    data = json.loads((tmp_path / "run.json").read_text(encoding="utf-8"))
    assert sorted(d["message"] for d in data) == ["first", "second"]


def test_json_reduces_exceptions_to_message(tmp_path: Path) -> None:
    export_records([{"message": "x", "error": ValueError("bad value")}], tmp_path / "run", ["json"])
    data = json.loads((tmp_path / "run.json").read_text(encoding="utf-8"))
    assert data == [{"message": "x", "error": "bad value"}]


def test_txt_writes_one_block_per_record(tmp_path: Path) -> None:
    prefix = tmp_path / "run"
    export_records([A, B], prefix, ["txt"])
    export_records([A], prefix, ["txt"], append=True)
    text = (tmp_path / "run.txt").read_text(encoding="utf-8")
    assert text.count("message   : first") == 2
    assert text.count("message   : second") == 1
    assert text.count("\n\n") == 3


def test_xlsx_appends_rows_to_table(tmp_path: Path) -> None:
    prefix = tmp_path / "run"
    export_records([A], prefix, ["xlsx"], append=True)
    export_records([B], prefix, ["xlsx"], append=True)

    wb = load_workbook(tmp_path / "run.xlsx")
    ws = wb["Log"]
    assert [c.value for c in ws[1]] == ["timestamp", "message"]
    assert [ws.cell(row=r, column=2).value for r in (2, 3)] == ["first", "second"]
    assert ws.tables["LogTable"].ref == "A1:B3"
    wb.close()


def test_xlsx_without_append_replaces_file(tmp_path: Path) -> None:
    prefix = tmp_path / "run"
    export_records([A, B], prefix, ["xlsx"])
    export_records([B], prefix, ["xlsx"])

    wb = load_workbook(tmp_path / "run.xlsx")
    ws = wb["Log"]
    assert ws.max_row == 2
    assert ws["B2"].value == "second"
    wb.close()


def test_failed_format_does_not_stop_others(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(records, columns, path, append):
        raise OSError("disk full")

    monkeypatch.setitem(log_exporter._REGISTRY, "json", broken)
    written = export_records([A], tmp_path / "run", ["json", "csv", "txt"])
    assert [p.name for p in written] == ["run.csv", "run.txt"]


def test_explicit_columns_fix_order(tmp_path: Path) -> None:
    export_records([{"b": 2, "a": 1}], tmp_path / "run", ["csv"], columns=["a", "b"])
    assert (tmp_path / "run.csv").read_text(encoding="utf-8").splitlines() == ["a;b", "1;2"]
