from __future__ import annotations

from typing import Iterable, Optional

import requests

from .config import RoutingConfig
from .logging_utils import get_logger
from .models import CoordinatePair, RouteResult

logger = get_logger(__name__)


class RoutingError(RuntimeError):
    """The routing service could not produce a route."""


class CoordinateFormatError(ValueError):
    """A coordinate cell is not in 'latitude, longitude' form."""


def to_routing_order(coordinate: str) -> str:
    """Convert 'lat, lon' free text to the 'lon,lat' order the router expects.

    >>> to_routing_order("52.52, 13.40")
    '13.40,52.52'
    """
    parts = [p.strip() for p in str(coordinate).split(",")]
    if len(parts) != 2 or not all(parts):
        raise CoordinateFormatError(f"expected 'latitude, longitude', got {coordinate!r}")
    lat, lon = parts
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except ValueError as e:
        raise CoordinateFormatError(f"non-numeric coordinate {coordinate!r}") from e
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0):
        raise CoordinateFormatError(f"coordinate out of range {coordinate!r}")
    return f"{lon},{lat}"


class RoutingClient:
    """Thin wrapper around the OSRM-style `/route/v1/{profile}/{a};{b}` endpoint."""

    def __init__(self, config: RoutingConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "route-enricher/1.0"})

    def route_url(self, start: str, destination: str) -> str:
        return f"{self.config.base_url}/{self.config.profile}/{start};{destination}"

    def route(self, start: str, destination: str) -> RouteResult:
        url = self.route_url(start, destination)
        try:
            response = self.session.get(url, params={"overview": "false"}, timeout=self.config.timeout_seconds)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise RoutingError(str(exc)) from exc
        except ValueError as exc:
            raise RoutingError(f"invalid JSON response: {exc}") from exc

        code = data.get("code") if isinstance(data, dict) else None
        if code != "Ok":
            message = data.get("message", "") if isinstance(data, dict) else ""
            raise RoutingError(f"routing service returned {code!r} {message}".strip())
        routes = data.get("routes") or []
        if not routes:
            raise RoutingError("routing service returned no routes")
        first = routes[0]
        try:
            return RouteResult(
                distance_meters=float(first["distance"]),
                duration_seconds=float(first["duration"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise RoutingError(f"malformed route: {exc}") from exc

    def close(self) -> None:
        self.session.close()


def resolve_pair(pair: CoordinatePair, client: RoutingClient) -> None:
    """Resolve one pair in place. Sets `api_result` or appends an error, never both."""
    try:
        start = to_routing_order(pair.start)
        destination = to_routing_order(pair.destination)
    except CoordinateFormatError as exc:
        pair.add_error(f"Invalid coordinate: {exc}")
        logger.warning(f"  Skipping pair {pair.start!r} -> {pair.destination!r}: {exc}")
        return

    try:
        result = client.route(start, destination)
    except RoutingError as exc:
        pair.add_error(f"Failed API request: {exc}")
        logger.warning(f"  Route request failed for {pair.start!r} -> {pair.destination!r}: {exc}")
        return

    pair.set_result(result)


def resolve_pairs(pairs: Iterable[CoordinatePair], client: RoutingClient) -> None:
    """Resolve pairs sequentially, in extraction order."""
    for pair in pairs:
        if pair.has_errors or pair.api_result is not None:
            continue
        resolve_pair(pair, client)
