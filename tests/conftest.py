"""Shared fixtures: workbook builders, a fake routing session and config helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pytest
import requests
from openpyxl import Workbook

from route_enricher.config import Config, config_from_dict

HEADER = ("Marker", "Coordinates", "Distance (km)", "Duration (min)")


def make_workbook(
    path: Path,
    rows: Iterable[Tuple[Any, Any]],
    sheet: str = "Routes",
    header: Optional[Sequence[str]] = HEADER,
) -> Path:
    """Write a workbook whose columns A/B hold marker/coordinate values."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet
    if header:
        ws.append(list(header))
    for marker, coord in rows:
        ws.append([marker, coord])
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    wb.close()
    return path


def ok_route(distance: float, duration: float) -> Dict[str, Any]:
    return {"code": "Ok", "routes": [{"distance": distance, "duration": duration}]}


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self) -> Any:
        return self.payload


class FakeSession:
    """Maps the `lon,lat;lon,lat` tail of the request URL to a payload or an exception."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = routes or {}
        self.headers: Dict[str, str] = {}
        self.calls: List[str] = []
        self.closed = False

    def get(self, url: str, params: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append(url)
        key = url.rsplit("/", 1)[-1]
        value = self.routes.get(key)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, FakeResponse):
            return value
        if value is None:
            return FakeResponse({"code": "NoRoute", "message": "Impossible route between points"})
        return FakeResponse(value)

    def close(self) -> None:
        self.closed = True


class FakeMailer:
    def __init__(self, fail: Optional[Exception] = None):
        self.sent: List[Any] = []
        self.fail = fail

    def send(self, msg, bcc=()) -> None:
        if self.fail is not None:
            raise self.fail
        self.sent.append((msg, list(bcc)))


def config_data(tmp_path: Path, **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "worksheet": "Routes",
        "columns": {"start_destination": "A", "coordinates": "B", "distance": "C", "duration": "D"},
        "folders": {"drop": str(tmp_path / "drop")},
        "routing": {"base_url": "http://router.test/route/v1"},
        "log": {"folder": str(tmp_path / "logs"), "extensions": ["csv", "json"]},
        "send_mail": {"when": "Never"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**overrides: Any) -> Config:
        cfg = config_from_dict(config_data(tmp_path, **overrides))
        cfg.folders.drop.mkdir(parents=True, exist_ok=True)
        return cfg
    return _make
