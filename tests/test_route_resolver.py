"""Unit tests for coordinate conversion and route resolution."""

from __future__ import annotations

import pytest
import requests

from conftest import FakeResponse, FakeSession, ok_route
from route_enricher.config import RoutingConfig
from route_enricher.models import CoordinatePair, RouteResult
from route_enricher.route_resolver import (
    CoordinateFormatError,
    RoutingClient,
    RoutingError,
    resolve_pair,
    resolve_pairs,
    to_routing_order,
)

CONFIG = RoutingConfig(base_url="http://router.test/route/v1")


def _pair(start: str = "48.8566, 2.3522", dest: str = "41.9028, 12.4964") -> CoordinatePair:
    return CoordinatePair(start=start, destination=dest, distance_cell="C2", duration_cell="D2")


def test_to_routing_order_swaps_and_trims() -> None:
    assert to_routing_order(" 48.8566 ,  2.3522 ") == "2.3522,48.8566"


@pytest.mark.parametrize("raw", ["", "48.8566", "a, b", "1, 2, 3", "95, 10", "10, 200"])
def test_to_routing_order_rejects_malformed(raw: str) -> None:
    with pytest.raises(CoordinateFormatError):
        to_routing_order(raw)


def test_route_url_uses_profile() -> None:
    client = RoutingClient(CONFIG, session=FakeSession())
    assert client.route_url("1,2", "3,4") == "http://router.test/route/v1/driving/1,2;3,4"


def test_resolve_success_sets_result_only() -> None:
    session = FakeSession({"2.3522,48.8566;12.4964,41.9028": ok_route(1033101.5, 143222.4)})
    pair = _pair()
    resolve_pair(pair, RoutingClient(CONFIG, session=session))
    assert pair.api_result == RouteResult(distance_meters=1033101.5, duration_seconds=143222.4)
    assert pair.errors == []
    assert session.calls == ["http://router.test/route/v1/driving/2.3522,48.8566;12.4964,41.9028"]


def test_resolve_uses_first_route() -> None:
    payload = {"code": "Ok", "routes": [{"distance": 10, "duration": 20}, {"distance": 99, "duration": 99}]}
    pair = _pair()
    resolve_pair(pair, RoutingClient(CONFIG, session=FakeSession({"2.3522,48.8566;12.4964,41.9028": payload})))
    assert pair.api_result == RouteResult(10.0, 20.0)


def test_non_ok_code_is_pair_error() -> None:
    pair = _pair()
    resolve_pair(pair, RoutingClient(CONFIG, session=FakeSession()))
    assert pair.api_result is None
    assert len(pair.errors) == 1
    assert pair.errors[0].startswith("Failed API request: ")
    assert "NoRoute" in pair.errors[0]


def test_network_error_is_pair_error() -> None:
    session = FakeSession({"2.3522,48.8566;12.4964,41.9028": requests.ConnectionError("connection refused")})
    pair = _pair()
    resolve_pair(pair, RoutingClient(CONFIG, session=session))
    assert pair.api_result is None
    assert pair.errors == ["Failed API request: connection refused"]


def test_http_status_error_is_pair_error() -> None:
    session = FakeSession({"2.3522,48.8566;12.4964,41.9028": FakeResponse({}, status_code=503)})
    pair = _pair()
    resolve_pair(pair, RoutingClient(CONFIG, session=session))
    assert pair.api_result is None
    assert "503" in pair.errors[0]


def test_empty_routes_raise_routing_error() -> None:
    session = FakeSession({"1,1;2,2": {"code": "Ok", "routes": []}})
    with pytest.raises(RoutingError):
        RoutingClient(CONFIG, session=session).route("1,1", "2,2")


def test_malformed_coordinate_is_recorded_and_not_requested() -> None:
    session = FakeSession()
    pair = _pair(start="not a coordinate")
    resolve_pair(pair, RoutingClient(CONFIG, session=session))
    assert session.calls == []
    assert pair.api_result is None
    assert pair.errors[0].startswith("Invalid coordinate: ")


def test_resolve_pairs_keeps_success_and_failure_exclusive() -> None:
    session = FakeSession({"2.3522,48.8566;12.4964,41.9028": ok_route(1.0, 2.0)})
    good, bad = _pair(), _pair(dest="10, 10")
    resolve_pairs([good, bad], RoutingClient(CONFIG, session=session))
    for pair in (good, bad):
        assert (pair.api_result is None) != (pair.errors == [])
    assert len(session.calls) == 2
