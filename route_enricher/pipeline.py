from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional

import requests

from .config import Config
from .event_log import EventLogBackend, EventRecorder
from .file_discovery import find_spreadsheets
from .file_processor import process_file
from .log_exporter import UnknownLogFormatError, export_records, normalize_extensions, registered_formats
from .log_records import PAIR_LOG_COLUMNS, SYSTEM_ERROR_COLUMNS, file_records, system_error_records
from .logging_utils import attach_run_log, detach_run_log, get_logger
from .models import (
    EVENT_RUN_FINISHED,
    EVENT_RUN_FINISHED_WITH_ERRORS,
    EVENT_RUN_STARTED,
    EventType,
    RunContext,
)
from .notification import SmtpMailer, notify
from .retention import sweep_old_logs
from .route_resolver import RoutingClient

logger = get_logger(__name__)


def _process_all(
    files: List[Path],
    config: Config,
    client: RoutingClient,
    ctx: RunContext,
    dry_run: bool,
) -> None:
    for path in files:
        try:
            result = process_file(path, config, client, ctx, dry_run=dry_run)
        except Exception as e:
            ctx.add_system_error(f"Unexpected failure while processing {path.name}: {e}")
            continue
        if result is not None:
            ctx.results.append(result)


def _export_logs(config: Config, ctx: RunContext, stamp: str) -> None:
    log = config.log
    if not log.enabled or log.folder is None:
        return

    exts = normalize_extensions(log.extensions)
    unknown = [e for e in exts if e not in registered_formats()]
    if unknown:
        ctx.add_system_error(str(UnknownLogFormatError(
            f"Unsupported log file extension(s): {', '.join(unknown)}"
        )))
        return

    for result in ctx.results:
        records = file_records(result, log)
        if not records:
            continue
        prefix = log.folder / f"{stamp}_{result.file.stem}"
        written = export_records(records, prefix, exts, append=log.append, columns=PAIR_LOG_COLUMNS)
        if not written:
            ctx.add_system_error(f"Could not write any log for {result.file.name}")
        ctx.log_files.extend(written)

    if log.system_errors and ctx.system_errors:
        prefix = log.folder / f"{stamp}_system_errors"
        written = export_records(
            system_error_records(ctx.system_errors), prefix, exts,
            append=log.append, columns=SYSTEM_ERROR_COLUMNS,
        )
        if not written:
            ctx.add_system_error("Could not write the system error log")
        ctx.log_files.extend(written)


def run(
    config: Config,
    session: Optional[requests.Session] = None,
    mailer: Optional[SmtpMailer] = None,
    event_backend: Optional[EventLogBackend] = None,
    dry_run: bool = False,
    ctx: Optional[RunContext] = None,
) -> RunContext:
    """One end-to-end run over the drop folder.

    Every step is attempted even when an earlier one failed; failures end
    up in ctx.system_errors, which drives the exit code.
    """
    ctx = ctx or RunContext()
    ctx.add_event("Route enrichment run started", EventType.INFORMATION, EVENT_RUN_STARTED, timestamp=ctx.started_at)
    stamp = ctx.started_at.strftime("%Y-%m-%d")

    run_log = None
    if config.log.enabled and config.log.folder is not None:
        try:
            config.log.folder.mkdir(parents=True, exist_ok=True)
            run_log = attach_run_log(config.log.folder / f"{stamp}_run.log")
        except OSError as e:
            ctx.add_system_error(f"Log folder {config.log.folder} is not usable: {e}")

    client = RoutingClient(config.routing, session=session)
    try:
        drop = config.folders.drop
        if not drop.is_dir():
            ctx.add_system_error(f"Drop folder not found: {drop}")
            files: List[Path] = []
        else:
            files = find_spreadsheets(drop, config.file_patterns)
            logger.info(f"Discovered {len(files)} spreadsheet(s) in {drop}")

        _process_all(files, config, client, ctx, dry_run)
        logger.info(
            f"Processed {len(ctx.results)} file(s), {len(ctx.pairs)} pair(s), "
            f"{ctx.pair_error_count} pair error(s)"
        )

        try:
            _export_logs(config, ctx, stamp)
        except Exception as e:
            ctx.add_system_error(f"Failed to write logs: {e}")

        if config.log.folder is not None and config.log.retention_days is not None:
            try:
                sweep_old_logs(config.log.folder, config.log.retention_days, ctx)
            except Exception as e:
                ctx.add_system_error(f"Log retention sweep failed: {e}")

        if ctx.system_errors:
            ctx.add_event(
                f"Route enrichment run finished with {len(ctx.system_errors)} system error(s)",
                EventType.WARNING, EVENT_RUN_FINISHED_WITH_ERRORS, timestamp=datetime.now(),
            )
        else:
            ctx.add_event("Route enrichment run finished", EventType.INFORMATION, EVENT_RUN_FINISHED, timestamp=datetime.now())

        if config.event_log.enabled:
            try:
                EventRecorder(config.event_log, event_backend).flush(ctx.events, ctx)
            except Exception as e:
                ctx.add_system_error(f"Event log unavailable: {e}")

        notify(config.mail, config.folders, ctx, mailer=mailer)
    finally:
        client.close()
        for err in ctx.system_errors:
            logger.warning(f"System error: {err.message}")
        if run_log is not None:
            detach_run_log(run_log)

    return ctx
