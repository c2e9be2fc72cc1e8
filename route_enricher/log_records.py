from __future__ import annotations

from typing import Any, Dict, List

from .config import LogConfig
from .models import CoordinatePair, FileResult, SystemErrorEntry

# Column order of the per-file log
PAIR_LOG_COLUMNS: List[str] = [
    "timestamp",
    "file",
    "startCoordinate",
    "destinationCoordinate",
    "distanceCell",
    "durationCell",
    "distanceInMeters",
    "durationInSeconds",
    "error",
]

SYSTEM_ERROR_COLUMNS: List[str] = ["timestamp", "message"]

Record = Dict[str, Any]


def pair_record(file_name: str, pair: CoordinatePair) -> Record:
    result = pair.api_result
    return {
        "timestamp": pair.timestamp.isoformat(timespec="seconds"),
        "file": file_name,
        "startCoordinate": pair.start,
        "destinationCoordinate": pair.destination,
        "distanceCell": pair.distance_cell,
        "durationCell": pair.duration_cell,
        "distanceInMeters": result.distance_meters if result else None,
        "durationInSeconds": result.duration_seconds if result else None,
        "error": "; ".join(pair.errors),
    }


def file_records(result: FileResult, log: LogConfig) -> List[Record]:
    """Records for one file's log, filtered by the "what to log" flags."""
    if log.all_actions:
        pairs = result.pairs
    elif log.only_action_errors:
        pairs = [p for p in result.pairs if p.has_errors]
    else:
        return []
    return [pair_record(result.file.name, p) for p in pairs]


def system_error_records(errors: List[SystemErrorEntry]) -> List[Record]:
    return [
        {"timestamp": e.timestamp.isoformat(timespec="seconds"), "message": e.message}
        for e in errors
    ]
