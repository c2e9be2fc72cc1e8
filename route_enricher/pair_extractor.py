"""
Pair extraction
---------------
Scans a worksheet top to bottom and pairs every destination row ("D" in
the marker column) with the most recent unconsumed start row ("S").

The scan is a two-state automaton:

    Idle --S--> AwaitingDestination(start)
    AwaitingDestination --S--> AwaitingDestination(new start)   # earlier start dropped
    AwaitingDestination --D--> Idle                             # emits a pair
    Idle --D--> Idle                                            # ignored

Any other row leaves the state unchanged.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from openpyxl.utils import column_index_from_string
from openpyxl.worksheet.worksheet import Worksheet

from .config import ColumnConfig
from .logging_utils import get_logger
from .models import CoordinatePair

logger = get_logger(__name__)

START_MARKER = "S"
DESTINATION_MARKER = "D"


@dataclass(frozen=True)
class MarkerRow:
    row: int
    marker: object
    coordinate: object
    distance_cell: str
    duration_cell: str


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class AwaitingDestination:
    start: str


ScanState = Union[Idle, AwaitingDestination]


def _marker_is(value: object, marker: str) -> bool:
    return isinstance(value, str) and value.strip() == marker


def _coordinate_text(value: object) -> str:
    return "" if value is None else str(value).strip()


def step(state: ScanState, row: MarkerRow) -> Tuple[ScanState, Optional[CoordinatePair]]:
    """Advance the scan by one row, returning the new state and an optional pair."""
    if _marker_is(row.marker, START_MARKER):
        return AwaitingDestination(start=_coordinate_text(row.coordinate)), None
    if _marker_is(row.marker, DESTINATION_MARKER) and isinstance(state, AwaitingDestination):
        pair = CoordinatePair(
            start=state.start,
            destination=_coordinate_text(row.coordinate),
            distance_cell=row.distance_cell,
            duration_cell=row.duration_cell,
        )
        return Idle(), pair
    return state, None


def scan_rows(rows: Iterable[MarkerRow]) -> List[CoordinatePair]:
    """Fold `step` over rows in order and collect the emitted pairs."""
    def _fold(acc: Tuple[ScanState, List[CoordinatePair]], row: MarkerRow):
        state, pairs = acc
        new_state, pair = step(state, row)
        if pair is not None:
            pairs.append(pair)
        return new_state, pairs

    _, pairs = reduce(_fold, rows, (Idle(), []))
    return pairs


def iter_marker_rows(ws: Worksheet, columns: ColumnConfig) -> Iterator[MarkerRow]:
    """Yield one MarkerRow per worksheet row, in row order."""
    marker_idx = column_index_from_string(columns.start_destination)
    coord_idx = column_index_from_string(columns.coordinates)
    lo = min(marker_idx, coord_idx)
    hi = max(marker_idx, coord_idx)

    for cells in ws.iter_rows(min_row=1, max_row=ws.max_row, min_col=lo, max_col=hi):
        row_number = cells[0].row
        yield MarkerRow(
            row=row_number,
            marker=cells[marker_idx - lo].value,
            coordinate=cells[coord_idx - lo].value,
            distance_cell=f"{columns.distance}{row_number}",
            duration_cell=f"{columns.duration}{row_number}",
        )


def extract_pairs(ws: Worksheet, columns: ColumnConfig) -> List[CoordinatePair]:
    pairs = scan_rows(iter_marker_rows(ws, columns))
    logger.info(f"  Extracted {len(pairs)} start/destination pair(s) from sheet '{ws.title}'")
    return pairs
