from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from openpyxl import load_workbook
from openpyxl.workbook.workbook import Workbook

from .config import Config
from .logging_utils import get_logger
from .models import FileResult, RunContext
from .pair_extractor import extract_pairs
from .route_resolver import RoutingClient, resolve_pairs
from .sheet_updater import update_sheet

logger = get_logger(__name__)


def _open_workbook(path: Path) -> Workbook:
    return load_workbook(path, keep_vba=path.suffix.lower() == ".xlsm")


def archive_target(path: Path, archive_dir: Path) -> Path:
    """Destination path inside `archive_dir`, suffixed with a timestamp on collision."""
    target = archive_dir / path.name
    if target.exists():
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = archive_dir / f"{path.stem}_{stamp}{path.suffix}"
    return target


def archive_file(path: Path, archive_dir: Path) -> Path:
    archive_dir.mkdir(parents=True, exist_ok=True)
    target = archive_target(path, archive_dir)
    shutil.move(str(path), str(target))
    return target


def process_file(
    path: Path,
    config: Config,
    client: RoutingClient,
    ctx: RunContext,
    dry_run: bool = False,
) -> Optional[FileResult]:
    """Extract, resolve and write back the pairs of one spreadsheet.

    File-level failures are recorded on `ctx` and never raised. Returns
    None when the file could not be opened or lacks the worksheet.
    """
    logger.info(f"Processing: {path}")
    try:
        wb = _open_workbook(path)
    except Exception as e:
        ctx.add_system_error(f"Failed to open {path}: {e}")
        return None

    result: Optional[FileResult] = None
    saved = False
    try:
        if config.worksheet not in wb.sheetnames:
            ctx.add_system_error(f"Worksheet '{config.worksheet}' not found in {path.name}")
            return None
        ws = wb[config.worksheet]

        result = FileResult(file=path, pairs=extract_pairs(ws, config.columns))
        resolve_pairs(result.pairs, client)

        if dry_run:
            logger.info("  Dry run: leaving workbook untouched")
            return result

        updated = update_sheet(ws, result.pairs, config.distance_format, config.duration_format)
        logger.info(f"  Updated {updated} of {len(result.pairs)} pair(s)")

        try:
            wb.save(path)
            saved = True
        except Exception as e:
            ctx.add_system_error(f"Failed to save {path}: {e}")
    finally:
        wb.close()

    if saved and config.folders.archive is not None:
        try:
            target = archive_file(path, config.folders.archive)
            logger.info(f"  Archived to {target}")
        except Exception as e:
            ctx.add_system_error(f"Failed to archive {path.name} to {config.folders.archive}: {e}")

    return result
