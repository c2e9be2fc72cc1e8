from __future__ import annotations

from typing import Iterable

from openpyxl.worksheet.worksheet import Worksheet

from .logging_utils import get_logger
from .models import CoordinatePair

logger = get_logger(__name__)


def meters_to_km(meters: float) -> float:
    return meters / 1000.0


def seconds_to_minutes(seconds: float) -> float:
    return seconds / 60.0


def _write_cell(ws: Worksheet, address: str, value: float, number_format: str) -> None:
    cell = ws[address]
    cell.value = value
    cell.number_format = number_format


def update_pair(
    ws: Worksheet,
    pair: CoordinatePair,
    distance_format: str = "0.00",
    duration_format: str = "0",
) -> bool:
    """Write one pair's route into its cells. Returns True when both writes succeed.

    The two writes are independent: a failed distance write is recorded and
    the duration write is still attempted.
    """
    result = pair.api_result
    if result is None:
        return False

    ok = True
    try:
        _write_cell(ws, pair.distance_cell, meters_to_km(result.distance_meters), distance_format)
    except Exception as e:
        pair.add_error(f"Failed to update distance cell {pair.distance_cell}: {e}")
        logger.warning(f"  Could not write {pair.distance_cell}: {e}")
        ok = False

    try:
        _write_cell(ws, pair.duration_cell, seconds_to_minutes(result.duration_seconds), duration_format)
    except Exception as e:
        pair.add_error(f"Failed to update duration cell {pair.duration_cell}: {e}")
        logger.warning(f"  Could not write {pair.duration_cell}: {e}")
        ok = False

    return ok


def update_sheet(
    ws: Worksheet,
    pairs: Iterable[CoordinatePair],
    distance_format: str = "0.00",
    duration_format: str = "0",
) -> int:
    """Write every resolved, error-free pair. Returns the number fully written."""
    updated = 0
    for pair in pairs:
        if pair.has_errors or pair.api_result is None:
            continue
        if update_pair(ws, pair, distance_format, duration_format):
            updated += 1
    return updated
