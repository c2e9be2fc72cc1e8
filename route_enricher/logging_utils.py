from __future__ import annotations
import logging
from pathlib import Path

_FORMAT = '[%(levelname)s] %(message)s'
_FILE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
_ENTRY_POINTS = ("__main__", "main")

def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        fmt = logging.Formatter(_FORMAT)
        ch.setFormatter(fmt)
        logger.addHandler(ch)
    return logger


def _is_ours(name: str) -> bool:
    return name == "route_enricher" or name.startswith("route_enricher.") or name in _ENTRY_POINTS


def set_level(level: int) -> None:
    """Apply `level` to every logger created through get_logger."""
    for name in list(logging.root.manager.loggerDict):
        if _is_ours(name):
            logging.getLogger(name).setLevel(level)


def attach_run_log(path: Path) -> logging.FileHandler:
    """Mirror all package loggers into `path` until detach_run_log is called."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    for name in list(logging.root.manager.loggerDict):
        if _is_ours(name):
            logging.getLogger(name).addHandler(handler)
    return handler


def detach_run_log(handler: logging.FileHandler) -> None:
    for name in list(logging.root.manager.loggerDict):
        lg = logging.getLogger(name)
        if handler in getattr(lg, "handlers", []):
            lg.removeHandler(handler)
    handler.close()
