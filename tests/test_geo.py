"""Unit tests for the TomTom geo client (HTTP mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from rallywatch.geo import (
    TomTomClient,
    TrafficFlow,
    format_waypoints,
    parse_route,
)
from rallywatch.models import Coordinate

KAMPALA = Coordinate(lat=0.34, lon=32.58)


def _response(payload: object, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


def _client(payload: object = None, status: int = 200) -> tuple[TomTomClient, MagicMock]:
    session = MagicMock()
    session.get.return_value = _response(payload, status)
    return TomTomClient(api_key="test-key", session=session), session


class TestTrafficFlow:
    """Tests for flow segment lookups."""

    def test_returns_flow(self) -> None:
        client, session = _client(
            {
                "flowSegmentData": {
                    "currentSpeed": 20,
                    "freeFlowSpeed": 50,
                    "currentTravelTime": 120,
                    "freeFlowTravelTime": 48,
                    "confidence": 0.9,
                    "roadClosure": False,
                }
            }
        )
        flow = client.get_traffic_flow(KAMPALA)
        assert flow is not None
        assert flow.current_speed == 20
        assert flow.free_flow_speed == 50
        assert flow.ratio == pytest.approx(0.4)
        assert flow.current_travel_time == 120

        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert "flowSegmentData" in url
        assert params["point"] == "0.34,32.58"
        assert params["key"] == "test-key"

    def test_missing_speeds_is_none(self) -> None:
        client, _ = _client({"flowSegmentData": {"currentSpeed": 20}})
        assert client.get_traffic_flow(KAMPALA) is None

    def test_zero_free_flow_has_no_ratio(self) -> None:
        assert TrafficFlow(current_speed=10, free_flow_speed=0).ratio is None


class TestRoute:
    """Tests for route calculation."""

    PAYLOAD = {
        "routes": [
            {
                "summary": {
                    "lengthInMeters": 5400,
                    "travelTimeInSeconds": 900,
                    "trafficDelayInSeconds": 120,
                },
                "legs": [
                    {
                        "summary": {"lengthInMeters": 5400, "travelTimeInSeconds": 900},
                        "points": [
                            {"latitude": 0.34, "longitude": 32.58},
                            {"latitude": 0.35, "longitude": 32.59},
                        ],
                    }
                ],
                "guidance": {
                    "instructions": [
                        {
                            "message": "Turn left onto Jinja Road",
                            "maneuver": "TURN_LEFT",
                            "point": {"latitude": 0.345, "longitude": 32.585},
                        }
                    ]
                },
            }
        ]
    }

    def test_returns_route(self) -> None:
        client, session = _client(self.PAYLOAD)
        route = client.calculate_route([KAMPALA, Coordinate(0.35, 32.59)])
        assert route is not None
        assert route.length_m == 5400
        assert route.traffic_delay_s == 120
        assert route.legs[0].points[1] == Coordinate(lat=0.35, lon=32.59)
        assert route.guidance[0].maneuver == "TURN_LEFT"
        assert "calculateRoute/0.34,32.58:0.35,32.59/json" in session.get.call_args.args[0]

    def test_needs_two_waypoints(self) -> None:
        client, session = _client(self.PAYLOAD)
        assert client.calculate_route([KAMPALA]) is None
        session.get.assert_not_called()

    def test_no_routes(self) -> None:
        assert parse_route({"routes": []}) is None

    def test_format_waypoints(self) -> None:
        assert format_waypoints([KAMPALA, Coordinate(1.0, 2.0)]) == "0.34,32.58:1.0,2.0"


class TestGeocode:
    """Tests for forward geocoding."""

    def test_returns_top_result(self) -> None:
        client, session = _client(
            {
                "results": [
                    {
                        "position": {"lat": 0.34, "lon": 32.58},
                        "address": {"freeformAddress": "Kampala, Uganda"},
                    }
                ]
            }
        )
        result = client.geocode("Kololo Airstrip, Kampala, Uganda")
        assert result is not None
        assert result.coordinate == KAMPALA
        assert result.address == "Kampala, Uganda"

        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert "/search/2/geocode/Kololo%20Airstrip%2C%20Kampala%2C%20Uganda.json" in url
        assert params["countrySet"] == "UG"

    def test_empty_results(self) -> None:
        client, _ = _client({"results": []})
        assert client.geocode("Nowhere") is None


class TestFailSoft:
    """Every lookup yields None instead of raising."""

    def test_missing_key_skips_request(self) -> None:
        session = MagicMock()
        client = TomTomClient(api_key="", session=session)
        assert client.get_traffic_flow(KAMPALA) is None
        assert client.geocode("Kampala") is None
        assert client.calculate_route([KAMPALA, KAMPALA]) is None
        session.get.assert_not_called()

    def test_transport_error(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("API down")
        client = TomTomClient(api_key="test-key", session=session)
        assert client.geocode("Kampala") is None
        assert client.get_traffic_flow(KAMPALA) is None

    def test_http_error_status(self) -> None:
        client, _ = _client({}, status=403)
        assert client.geocode("Kampala") is None

    def test_malformed_payload(self) -> None:
        client, _ = _client({"flowSegmentData": {"currentSpeed": "fast", "freeFlowSpeed": 50}})
        assert client.get_traffic_flow(KAMPALA) is None

    def test_non_object_payload(self) -> None:
        client, _ = _client(["not", "an", "object"])
        assert client.geocode("Kampala") is None
