from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RouteResult:
    distance_meters: float
    duration_seconds: float


@dataclass
class CoordinatePair:
    """One start/destination combination found in a worksheet.

    `api_result` is set at most once by the resolver. `errors` only ever
    grows; a pair with any error is skipped by the sheet updater.
    """
    start: str
    destination: str
    distance_cell: str
    duration_cell: str
    timestamp: datetime = field(default_factory=datetime.now)
    api_result: Optional[RouteResult] = None
    errors: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def set_result(self, result: RouteResult) -> None:
        if self.api_result is not None:
            raise ValueError("Route result already set for this pair")
        self.api_result = result


@dataclass
class FileResult:
    file: Path
    pairs: List[CoordinatePair] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for p in self.pairs if p.has_errors)

    @property
    def updated_count(self) -> int:
        return sum(1 for p in self.pairs if not p.has_errors and p.api_result is not None)


@dataclass(frozen=True)
class SystemErrorEntry:
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


class EventType(str, Enum):
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    SUCCESS_AUDIT = "SuccessAudit"
    FAILURE_AUDIT = "FailureAudit"


@dataclass(frozen=True)
class EventLogEntry:
    message: str
    entry_type: EventType
    event_id: int
    timestamp: Optional[datetime] = None


# Event ids written to the OS event log
EVENT_RUN_STARTED = 1000
EVENT_RUN_FINISHED = 1001
EVENT_RUN_FINISHED_WITH_ERRORS = 1002
EVENT_SYSTEM_ERROR = 1100


@dataclass
class RunContext:
    """Accumulators shared by every step of one run.

    Append-only; passed explicitly to each component.
    """
    started_at: datetime = field(default_factory=datetime.now)
    system_errors: List[SystemErrorEntry] = field(default_factory=list)
    events: List[EventLogEntry] = field(default_factory=list)
    results: List[FileResult] = field(default_factory=list)
    log_files: List[Path] = field(default_factory=list)

    def add_system_error(self, message: str) -> SystemErrorEntry:
        entry = SystemErrorEntry(message=message)
        self.system_errors.append(entry)
        self.add_event(message, EventType.ERROR, EVENT_SYSTEM_ERROR, timestamp=entry.timestamp)
        logger.error(message)
        return entry

    def add_event(
        self,
        message: str,
        entry_type: EventType = EventType.INFORMATION,
        event_id: int = EVENT_RUN_STARTED,
        timestamp: Optional[datetime] = None,
    ) -> None:
        self.events.append(EventLogEntry(message=message, entry_type=entry_type, event_id=event_id, timestamp=timestamp))

    @property
    def processed_files(self) -> List[Path]:
        return [r.file for r in self.results]

    @property
    def pairs(self) -> List[CoordinatePair]:
        return [p for r in self.results for p in r.pairs]

    @property
    def pair_error_count(self) -> int:
        return sum(r.error_count for r in self.results)

    @property
    def has_errors(self) -> bool:
        return bool(self.system_errors) or self.pair_error_count > 0

    @property
    def exit_code(self) -> int:
        return 1 if self.system_errors else 0
