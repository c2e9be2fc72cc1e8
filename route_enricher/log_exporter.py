"""
Log export
----------
Serialises a list of flat records to one or more files sharing a path
prefix (``<prefix>.csv``, ``<prefix>.json`` ...). Each format is a
serializer registered under its extension; adding a format means adding
one function and one ``register_format`` call.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from .config import ConfigError
from .logging_utils import get_logger

logger = get_logger(__name__)

Record = Dict[str, Any]
Serializer = Callable[[List[Record], List[str], Path, bool], None]


class UnknownLogFormatError(ConfigError):
    """A requested log extension has no registered serializer."""


_REGISTRY: Dict[str, Serializer] = {}


def register_format(extension: str, serializer: Serializer) -> None:
    _REGISTRY[extension.lower().lstrip(".")] = serializer


def registered_formats() -> List[str]:
    return sorted(_REGISTRY)


def normalize_extensions(extensions: Iterable[str]) -> List[str]:
    """Lower-case, strip dots and drop duplicates while preserving order."""
    out: List[str] = []
    for ext in extensions:
        key = str(ext).strip().lower().lstrip(".")
        if key and key not in out:
            out.append(key)
    return out


def _columns_for(records: Sequence[Record], columns: Optional[Sequence[str]]) -> List[str]:
    if columns:
        return list(columns)
    out: List[str] = []
    for r in records:
        for k in r:
            if k not in out:
                out.append(k)
    return out


def _plain(value: Any) -> Any:
    # Exceptions are logged by message only
    if isinstance(value, BaseException):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------

def write_csv(records: List[Record], columns: List[str], path: Path, append: bool) -> None:
    """Semicolon-delimited; the header is written only when the file is new or overwritten."""
    df = pd.DataFrame.from_records(
        [{k: _plain(r.get(k)) for k in columns} for r in records],
        columns=columns,
    )
    existing = append and path.exists() and path.stat().st_size > 0
    df.to_csv(
        path,
        sep=";",
        index=False,
        header=not existing,
        mode="a" if append else "w",
        encoding="utf-8",
    )


def write_json(records: List[Record], columns: List[str], path: Path, append: bool) -> None:
    """JSON array. In append mode the old array is read back and the new records are put in front."""
    new_items = [{k: _plain(r.get(k)) for k in columns} for r in records]
    previous: List[Any] = []
    if append and path.exists() and path.stat().st_size > 0:
        with open(path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        previous = loaded if isinstance(loaded, list) else [loaded]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(new_items + previous, f, indent=2, ensure_ascii=False, default=str)


def write_txt(records: List[Record], columns: List[str], path: Path, append: bool) -> None:
    width = max((len(c) for c in columns), default=0)
    with open(path, "a" if append else "w", encoding="utf-8") as f:
        for r in records:
            for k in columns:
                v = _plain(r.get(k))
                f.write(f"{k.ljust(width)} : {'' if v is None else v}\n")
            f.write("\n")


_TABLE_NAME = "LogTable"
_SHEET_NAME = "Log"
BLUE = "FF366092"


def _autosize(ws) -> None:
    for col_idx in range(1, ws.max_column + 1):
        max_length = 0
        letter = get_column_letter(col_idx)
        for row in ws.iter_rows(min_row=1, max_row=ws.max_row, min_col=col_idx, max_col=col_idx):
            cell = row[0]
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[letter].width = min(max_length + 2, 60)


def _excel_value(v: Any) -> Any:
    v = _plain(v)
    if v is None or isinstance(v, (int, float, str, bool)):
        return v
    return str(v)


def write_xlsx(records: List[Record], columns: List[str], path: Path, append: bool) -> None:
    """Rows of an Excel table. Without append any existing workbook is replaced."""
    if not append and path.exists():
        path.unlink()

    if path.exists():
        wb = load_workbook(path)
        ws = wb[_SHEET_NAME] if _SHEET_NAME in wb.sheetnames else wb.active
        header = [c.value for c in ws[1]]
    else:
        wb = Workbook()
        ws = wb.active
        ws.title = _SHEET_NAME
        header = list(columns)
        ws.append(header)
        for idx in range(1, len(header) + 1):
            cell = ws.cell(row=1, column=idx)
            cell.fill = PatternFill(fill_type="solid", fgColor=BLUE)
            cell.font = Font(color="FFFFFF", bold=True)
            cell.alignment = Alignment(horizontal="center")

    try:
        for r in records:
            ws.append([_excel_value(r.get(k)) for k in header])

        if ws.max_row > 1:
            ref = f"A1:{get_column_letter(len(header))}{ws.max_row}"
            if _TABLE_NAME in ws.tables:
                ws.tables[_TABLE_NAME].ref = ref
                if ws.tables[_TABLE_NAME].autoFilter is not None:
                    ws.tables[_TABLE_NAME].autoFilter.ref = ref
            else:
                table = Table(displayName=_TABLE_NAME, ref=ref)
                table.tableStyleInfo = TableStyleInfo(name="TableStyleMedium2", showRowStripes=True)
                ws.add_table(table)
        _autosize(ws)
        wb.save(path)
    finally:
        wb.close()


register_format("csv", write_csv)
register_format("json", write_json)
register_format("txt", write_txt)
register_format("xlsx", write_xlsx)


def export_records(
    records: Sequence[Record],
    path_prefix: Path,
    extensions: Iterable[str],
    append: bool = False,
    columns: Optional[Sequence[str]] = None,
) -> List[Path]:
    """Write `records` once per extension and return the paths written.

    Raises UnknownLogFormatError before writing anything if an extension
    is not registered. A failure in one format is logged and the other
    formats are still attempted.
    """
    exts = normalize_extensions(extensions)
    unknown = [e for e in exts if e not in _REGISTRY]
    if unknown:
        raise UnknownLogFormatError(
            f"Unsupported log file extension(s): {', '.join(unknown)} "
            f"(supported: {', '.join(registered_formats())})"
        )

    rows = list(records)
    cols = _columns_for(rows, columns)
    path_prefix.parent.mkdir(parents=True, exist_ok=True)

    written: List[Path] = []
    for ext in exts:
        path = path_prefix.with_name(f"{path_prefix.name}.{ext}")
        try:
            _REGISTRY[ext](rows, cols, path, append)
            written.append(path)
            logger.info(f"  Wrote {len(rows)} record(s) to {path}")
        except Exception as e:
            logger.warning(f"Failed to write {ext} log {path}: {e}")
    return written
