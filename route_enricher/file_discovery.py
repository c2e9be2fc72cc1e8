from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

def find_spreadsheets(folder: Path, patterns: Iterable[str]) -> List[Path]:
    """Find spreadsheet files directly inside `folder` (not recursive)."""
    out: List[Path] = []
    seen = set()
    for pattern in patterns:
        for p in folder.glob(pattern):
            if not p.is_file():
                continue
            # Ignore Office lock files (~$Book.xlsx) and Mac resource forks
            if p.name.startswith("~$") or p.name.startswith("._"):
                continue
            rp = p.resolve()
            if rp not in seen:
                seen.add(rp)
                out.append(rp)
    # Stable sort by name so runs are reproducible
    return sorted(out, key=lambda p: p.name.lower())
