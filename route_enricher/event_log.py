from __future__ import annotations

import logging
import logging.handlers
import sys
from typing import Iterable, List, Optional, Protocol

from .config import EventLogConfig
from .logging_utils import get_logger
from .models import EventLogEntry, EventType, RunContext

logger = get_logger(__name__)


class EventLogBackend(Protocol):
    def source_exists(self, source: str, log_name: str) -> bool: ...

    def create_source(self, source: str, log_name: str) -> None: ...

    def write(self, source: str, log_name: str, entry_type: EventType, event_id: int, message: str) -> None: ...

    def close(self) -> None: ...


class WindowsEventLog:
    """Windows Application/custom event log through pywin32."""

    _REG_PATH = r"SYSTEM\CurrentControlSet\Services\EventLog\{log}\{source}"

    def source_exists(self, source: str, log_name: str) -> bool:
        import winreg

        try:
            key = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self._REG_PATH.format(log=log_name, source=source))
        except OSError:
            return False
        winreg.CloseKey(key)
        return True

    def create_source(self, source: str, log_name: str) -> None:
        import win32evtlogutil

        win32evtlogutil.AddSourceToRegistry(source, eventLogType=log_name)

    def write(self, source: str, log_name: str, entry_type: EventType, event_id: int, message: str) -> None:
        import win32evtlog
        import win32evtlogutil

        types = {
            EventType.INFORMATION: win32evtlog.EVENTLOG_INFORMATION_TYPE,
            EventType.WARNING: win32evtlog.EVENTLOG_WARNING_TYPE,
            EventType.ERROR: win32evtlog.EVENTLOG_ERROR_TYPE,
            EventType.SUCCESS_AUDIT: win32evtlog.EVENTLOG_AUDIT_SUCCESS,
            EventType.FAILURE_AUDIT: win32evtlog.EVENTLOG_AUDIT_FAILURE,
        }
        win32evtlogutil.ReportEvent(source, event_id, eventType=types[entry_type], strings=[message])

    def close(self) -> None:
        return None


class _StrictSysLogHandler(logging.handlers.SysLogHandler):
    """SysLogHandler that raises delivery errors instead of printing them."""

    def handleError(self, record: logging.LogRecord) -> None:
        raise


class SyslogEventLog:
    """Syslog fallback for non-Windows hosts."""

    _LEVELS = {
        EventType.INFORMATION: logging.INFO,
        EventType.WARNING: logging.WARNING,
        EventType.ERROR: logging.ERROR,
        EventType.SUCCESS_AUDIT: logging.INFO,
        EventType.FAILURE_AUDIT: logging.WARNING,
    }

    def __init__(self, address: str | tuple = "/dev/log"):
        self.address = address
        self._handler: Optional[_StrictSysLogHandler] = None

    def _get_handler(self, source: str) -> _StrictSysLogHandler:
        if self._handler is None:
            self._handler = _StrictSysLogHandler(address=self.address)
            self._handler.setFormatter(logging.Formatter(f"{source}: %(message)s"))
        return self._handler

    def source_exists(self, source: str, log_name: str) -> bool:
        return True

    def create_source(self, source: str, log_name: str) -> None:
        return None

    def write(self, source: str, log_name: str, entry_type: EventType, event_id: int, message: str) -> None:
        record = logging.makeLogRecord({
            "name": f"eventlog.{source}",
            "levelno": self._LEVELS[entry_type],
            "levelname": logging.getLevelName(self._LEVELS[entry_type]),
            "msg": f"[{log_name}] [{entry_type.value}] ({event_id}) {message}",
        })
        self._get_handler(source).emit(record)

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None


def default_backend() -> EventLogBackend:
    if sys.platform == "win32":
        return WindowsEventLog()
    return SyslogEventLog()


class EventRecorder:
    """Writes the run's queued events to the OS event log in one pass."""

    def __init__(self, config: EventLogConfig, backend: Optional[EventLogBackend] = None):
        self.config = config
        self.backend = backend or default_backend()

    def ensure_source(self) -> None:
        if not self.backend.source_exists(self.config.source, self.config.log_name):
            logger.info(f"Creating event log source '{self.config.source}' in '{self.config.log_name}'")
            self.backend.create_source(self.config.source, self.config.log_name)

    def flush(self, events: Iterable[EventLogEntry], ctx: RunContext) -> int:
        """Write every event; failures become system errors. Returns the count written."""
        pending = list(events)
        try:
            return self._write_all(pending, ctx)
        finally:
            self.backend.close()

    def _write_all(self, pending: List[EventLogEntry], ctx: RunContext) -> int:
        try:
            self.ensure_source()
        except Exception as e:
            ctx.add_system_error(f"Event log source '{self.config.source}' unavailable: {e}")
            return 0

        written = 0
        for entry in pending:
            message = entry.message
            if entry.timestamp is not None:
                message = f"{entry.timestamp.isoformat(timespec='seconds')} {message}"
            try:
                self.backend.write(self.config.source, self.config.log_name, entry.entry_type, entry.event_id, message)
                written += 1
            except Exception as e:
                ctx.add_system_error(f"Failed to write event {entry.event_id} to event log: {e}")
                break
        return written
