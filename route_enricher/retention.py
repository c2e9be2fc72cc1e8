from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from .logging_utils import get_logger
from .models import RunContext

logger = get_logger(__name__)


def sweep_old_logs(
    folder: Path,
    max_age_days: int,
    ctx: RunContext,
    now: Optional[datetime] = None,
) -> List[Path]:
    """Delete files in `folder` (not recursive) modified strictly before now - max_age_days."""
    now = now or datetime.now()
    cutoff = (now - timedelta(days=max_age_days)).timestamp()
    deleted: List[Path] = []
    if not folder.is_dir():
        return deleted

    for p in sorted(folder.iterdir()):
        if not p.is_file():
            continue
        try:
            if p.stat().st_mtime < cutoff:
                p.unlink()
                deleted.append(p)
        except OSError as e:
            ctx.add_system_error(f"Failed to delete old log {p}: {e}")

    if deleted:
        logger.info(f"Removed {len(deleted)} log file(s) older than {max_age_days} day(s) from {folder}")
    return deleted
