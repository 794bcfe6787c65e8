"""TomTom client for traffic flow, routing, and forward geocoding.

All public methods fail soft: a missing API key, a transport error, a
non-2xx response, or an empty/malformed payload is logged and returned as
``None`` so callers fall back to their own defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar
from urllib.parse import quote

import requests

from rallywatch import config
from rallywatch.errors import GeoLookupError
from rallywatch.models import Coordinate

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

FLOW_ZOOM = 10
WAYPOINT_SEPARATOR = ":"


@dataclass
class TrafficFlow:
    """Flow segment data at a point.

    Attributes:
        current_speed: Observed speed on the segment.
        free_flow_speed: Uncongested speed on the segment (same units).
        current_travel_time: Observed traversal time in seconds, if reported.
        free_flow_travel_time: Uncongested traversal time, if reported.
        confidence: Provider confidence between 0 and 1, if reported.
        road_closure: Whether the segment is closed.
    """

    current_speed: float
    free_flow_speed: float
    current_travel_time: int | None = None
    free_flow_travel_time: int | None = None
    confidence: float | None = None
    road_closure: bool = False

    @property
    def ratio(self) -> float | None:
        """Current speed over free-flow speed, or None if undefined."""
        if self.free_flow_speed <= 0:
            return None
        return self.current_speed / self.free_flow_speed


@dataclass
class RouteLeg:
    """One leg of a route between consecutive waypoints."""

    points: list[Coordinate]
    length_m: int = 0
    travel_time_s: int = 0


@dataclass
class GuidanceInstruction:
    """A single turn-by-turn instruction."""

    message: str
    maneuver: str = ""
    point: Coordinate | None = None


@dataclass
class Route:
    """A calculated route.

    Attributes:
        length_m: Total length in metres.
        travel_time_s: Total travel time in seconds, traffic included.
        traffic_delay_s: Delay attributed to traffic, in seconds.
        legs: Route legs with their geometry.
        guidance: Turn-by-turn instructions.
    """

    length_m: int
    travel_time_s: int
    traffic_delay_s: int = 0
    legs: list[RouteLeg] = field(default_factory=list)
    guidance: list[GuidanceInstruction] = field(default_factory=list)


@dataclass
class GeocodeResult:
    """Top geocoding hit for a query."""

    coordinate: Coordinate
    address: str = ""


def format_waypoints(waypoints: Sequence[Coordinate]) -> str:
    """Join waypoints into the ``lat,lon:lat,lon`` form used by routing."""
    return WAYPOINT_SEPARATOR.join(point.as_param() for point in waypoints)


def _coordinate(raw: Any) -> Coordinate | None:
    """Read a ``{"latitude", "longitude"}`` or ``{"lat", "lon"}`` mapping."""
    if not isinstance(raw, dict):
        return None
    lat = raw.get("latitude", raw.get("lat"))
    lon = raw.get("longitude", raw.get("lon"))
    if lat is None or lon is None:
        return None
    return Coordinate(lat=float(lat), lon=float(lon))


def parse_flow(payload: dict[str, Any]) -> TrafficFlow | None:
    """Convert a flowSegmentData payload into a TrafficFlow.

    Args:
        payload: Decoded JSON response.

    Returns:
        TrafficFlow, or None if the speeds are missing.
    """
    segment = payload.get("flowSegmentData")
    if not isinstance(segment, dict):
        return None
    current = segment.get("currentSpeed")
    free_flow = segment.get("freeFlowSpeed")
    if current is None or free_flow is None:
        return None
    return TrafficFlow(
        current_speed=float(current),
        free_flow_speed=float(free_flow),
        current_travel_time=segment.get("currentTravelTime"),
        free_flow_travel_time=segment.get("freeFlowTravelTime"),
        confidence=segment.get("confidence"),
        road_closure=bool(segment.get("roadClosure", False)),
    )


def parse_route(payload: dict[str, Any]) -> Route | None:
    """Convert a calculateRoute payload into the first Route.

    Args:
        payload: Decoded JSON response.

    Returns:
        Route, or None if the payload holds no routes.
    """
    routes = payload.get("routes") or []
    if not routes:
        return None
    raw = routes[0]
    summary = raw.get("summary") or {}

    legs: list[RouteLeg] = []
    for leg in raw.get("legs") or []:
        leg_summary = leg.get("summary") or {}
        points = [p for p in map(_coordinate, leg.get("points") or []) if p]
        legs.append(
            RouteLeg(
                points=points,
                length_m=int(leg_summary.get("lengthInMeters", 0)),
                travel_time_s=int(leg_summary.get("travelTimeInSeconds", 0)),
            )
        )

    guidance: list[GuidanceInstruction] = []
    for instruction in (raw.get("guidance") or {}).get("instructions") or []:
        guidance.append(
            GuidanceInstruction(
                message=instruction.get("message", ""),
                maneuver=instruction.get("maneuver", ""),
                point=_coordinate(instruction.get("point")),
            )
        )

    return Route(
        length_m=int(summary.get("lengthInMeters", 0)),
        travel_time_s=int(summary.get("travelTimeInSeconds", 0)),
        traffic_delay_s=int(summary.get("trafficDelayInSeconds", 0)),
        legs=legs,
        guidance=guidance,
    )


def parse_geocode(payload: dict[str, Any]) -> GeocodeResult | None:
    """Convert a geocode payload into its top result.

    Args:
        payload: Decoded JSON response.

    Returns:
        GeocodeResult, or None if there are no results.
    """
    results = payload.get("results") or []
    if not results:
        return None
    top = results[0]
    coordinate = _coordinate(top.get("position"))
    if coordinate is None:
        return None
    address = (top.get("address") or {}).get("freeformAddress", "")
    return GeocodeResult(coordinate=coordinate, address=address)


class TomTomClient:
    """Stateless wrapper over the TomTom REST APIs.

    Args:
        api_key: TomTom API key. Lookups are skipped when empty.
        session: HTTP session to use.
        base_url: API root, overridable for testing.
        timeout: Per-request timeout in seconds.
        country_set: ISO country code geocoding is scoped to.
    """

    def __init__(
        self,
        api_key: str = config.TOMTOM_API_KEY,
        session: requests.Session | None = None,
        base_url: str = config.TOMTOM_BASE_URL,
        timeout: float = config.REQUEST_TIMEOUT_S,
        country_set: str = config.GEOCODE_COUNTRY_SET,
    ) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.country_set = country_set
        if not self.api_key:
            logger.warning("TOMTOM_API_KEY is not set; geo lookups disabled.")

    def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET ``base_url + path`` with the API key and decode the JSON body.

        Raises:
            GeoLookupError: If the key is missing or the request fails.
        """
        if not self.api_key:
            raise GeoLookupError("TomTom API key is not configured")
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(
                url,
                params={**params, "key": self.api_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise GeoLookupError(f"{path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise GeoLookupError(f"{path}: unexpected payload type")
        return payload

    def _lookup(
        self,
        path: str,
        params: dict[str, Any],
        parser: Callable[[dict[str, Any]], _T | None],
    ) -> _T | None:
        """Fetch and parse one provider response.

        Raises:
            GeoLookupError: On request failure or a malformed payload.
        """
        payload = self._get_json(path, params)
        try:
            return parser(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise GeoLookupError(f"{path}: malformed payload: {exc}") from exc

    def get_traffic_flow(self, point: Coordinate) -> TrafficFlow | None:
        """Look up current and free-flow speed at *point*.

        Args:
            point: Location to sample.

        Returns:
            TrafficFlow, or None if flow data is unavailable.
        """
        try:
            return self._lookup(
                f"/traffic/services/4/flowSegmentData/absolute/{FLOW_ZOOM}/json",
                {"point": point.as_param()},
                parse_flow,
            )
        except GeoLookupError as exc:
            logger.warning("Traffic flow unavailable at %s: %s", point.as_param(), exc)
            return None

    def calculate_route(self, waypoints: Sequence[Coordinate]) -> Route | None:
        """Calculate a traffic-aware route through *waypoints* in order.

        Args:
            waypoints: At least two coordinates.

        Returns:
            Route, or None if no route could be calculated.
        """
        if len(waypoints) < 2:
            logger.warning("Route needs at least two waypoints, got %d.", len(waypoints))
            return None
        locations = format_waypoints(waypoints)
        try:
            return self._lookup(
                f"/routing/1/calculateRoute/{locations}/json",
                {"traffic": "true", "instructionsType": "text"},
                parse_route,
            )
        except GeoLookupError as exc:
            logger.warning("Route unavailable for %s: %s", locations, exc)
            return None

    def geocode(self, query: str) -> GeocodeResult | None:
        """Forward-geocode a free-text *query* within ``country_set``.

        Args:
            query: Address or place description.

        Returns:
            The top GeocodeResult, or None if nothing matched.
        """
        try:
            result = self._lookup(
                f"/search/2/geocode/{quote(query, safe='')}.json",
                {"countrySet": self.country_set, "limit": 1},
                parse_geocode,
            )
        except GeoLookupError as exc:
            logger.warning("Geocoding failed for %r: %s", query, exc)
            return None
        if result is None:
            logger.info("No geocoding results for %r.", query)
        return result
