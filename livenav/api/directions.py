"""
Low-level access to the routing provider (Google Directions API).

Responsible for:
- Turning an origin/destination/mode request plus options into query params
- Mapping the JSON response onto DirectionsResponse instances

Example request:
https://maps.googleapis.com/maps/api/directions/json?origin=19.07,72.87&destination=18.52,73.85&mode=driving&alternatives=true&units=metric&departure_time=now&key=KEY
"""
from __future__ import annotations

import dataclasses
import logging

from ..const import DIRECTIONS_API_URL, REQUEST_TIMEOUT
from ..models import Coordinate, TravelMode
from ..requests import make_request

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Measure:
    """A provider value with its localised text, e.g. (1520, "25 mins")."""
    value: int
    text: str


@dataclasses.dataclass(frozen=True)
class Leg:
    distance: Measure
    duration: Measure
    duration_in_traffic: Measure | None = None


@dataclasses.dataclass(frozen=True)
class DirectionsRoute:
    legs: list[Leg]
    summary: str = ""


@dataclasses.dataclass(frozen=True)
class DirectionsResponse:
    status: str
    routes: list[DirectionsRoute] = dataclasses.field(default_factory=list)
    error_message: str | None = None


def _parse_measure(raw: dict | None) -> Measure | None:
    if not raw:
        return None
    return Measure(int(raw["value"]), str(raw.get("text", raw["value"])))


def _parse_route(raw: dict) -> DirectionsRoute:
    legs = [
        Leg(
            distance=_parse_measure(leg["distance"]),
            duration=_parse_measure(leg["duration"]),
            duration_in_traffic=_parse_measure(leg.get("duration_in_traffic")),
        )
        for leg in raw.get("legs", [])
    ]
    return DirectionsRoute(legs, raw.get("summary", ""))


def parse_response(raw_json: dict) -> DirectionsResponse:
    """
    Normalise a directions JSON body.

    Raises ValueError when the body does not follow the documented schema.
    """
    if not isinstance(raw_json, dict) or "status" not in raw_json:
        _LOGGER.error("Unexpected directions response format: %s", raw_json)
        raise ValueError("Unexpected directions response format")
    try:
        routes = [_parse_route(r) for r in raw_json.get("routes") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed route in directions response: {e}") from e
    return DirectionsResponse(raw_json["status"], routes, raw_json.get("error_message"))


def build_params(origin: Coordinate, destination: Coordinate, mode: TravelMode, options: dict) -> dict:
    """Translate a route request into Directions API query parameters."""
    params = {
        "origin": origin.as_param(),
        "destination": destination.as_param(),
        "mode": mode.value,
        "alternatives": "true" if options.get("alternatives") else "false",
        "units": options.get("units", "metric"),
    }
    if "departure_time" in options:
        params["departure_time"] = options["departure_time"]
    if "traffic_model" in options:
        params["traffic_model"] = options["traffic_model"]
    if options.get("transit_modes"):
        params["transit_mode"] = "|".join(options["transit_modes"])
    if "transit_routing_preference" in options:
        params["transit_routing_preference"] = options["transit_routing_preference"]
    return params


class GoogleDirectionsProvider:
    """Routing collaborator backed by the Google Directions API."""

    def __init__(self, api_key: str, timeout: float = REQUEST_TIMEOUT) -> None:
        self.api_key = api_key
        self.timeout = timeout

    async def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        options: dict,
    ) -> DirectionsResponse:
        params = build_params(origin, destination, mode, options)
        params["key"] = self.api_key
        raw_json = await make_request("GET", DIRECTIONS_API_URL, params=params, timeout=self.timeout)
        return parse_response(raw_json)
