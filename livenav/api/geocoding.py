"""
Low-level access to the primary (Google) geocoding provider.

Responsible for:
- Forward geocoding a free-text address into candidate coordinates
- Reverse geocoding a coordinate into a formatted address
- Mapping the JSON response onto GeocodeResponse instances

Provider status strings (OK, ZERO_RESULTS, OVER_QUERY_LIMIT, ...) are passed
through untouched; interpreting them is the Geocoder's job.

Example request:
https://maps.googleapis.com/maps/api/geocode/json?address=Paris&key=KEY
"""
from __future__ import annotations

import dataclasses
import logging

from ..const import GEOCODE_API_URL, REQUEST_TIMEOUT
from ..models import Coordinate
from ..requests import make_request

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class GeocodeResult:
    formatted_address: str
    coordinate: Coordinate | None = None


@dataclasses.dataclass(frozen=True)
class GeocodeResponse:
    status: str
    results: list[GeocodeResult] = dataclasses.field(default_factory=list)
    error_message: str | None = None


def _parse_result(raw: dict) -> GeocodeResult | None:
    """Map a single raw result dict onto a GeocodeResult, or None if malformed."""
    try:
        location = raw.get("geometry", {}).get("location")
        coordinate = Coordinate(float(location["lat"]), float(location["lng"])) if location else None
        return GeocodeResult(raw.get("formatted_address", ""), coordinate)
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.warning("Skipping malformed geocode result: %s", e)
        return None


def parse_response(raw_json: dict) -> GeocodeResponse:
    """Normalise a geocoding JSON body."""
    if not isinstance(raw_json, dict) or "status" not in raw_json:
        _LOGGER.error("Unexpected geocoding response format: %s", raw_json)
        raise ValueError("Unexpected geocoding response format")
    results = [r for r in (_parse_result(raw) for raw in raw_json.get("results") or []) if r]
    return GeocodeResponse(raw_json["status"], results, raw_json.get("error_message"))


class GoogleGeocodingProvider:
    """Primary geocoding collaborator backed by the Google Geocoding API."""

    def __init__(self, api_key: str, timeout: float = REQUEST_TIMEOUT) -> None:
        self.api_key = api_key
        self.timeout = timeout

    async def geocode(self, address: str) -> GeocodeResponse:
        """
        Resolve a free-text address.

        Raises transport errors (timeout, HTTP, malformed body) unchanged.
        """
        params = {"address": address, "key": self.api_key}
        raw_json = await make_request("GET", GEOCODE_API_URL, params=params, timeout=self.timeout)
        response = parse_response(raw_json)
        _LOGGER.debug("Geocoding %r -> %s (%d results)", address, response.status, len(response.results))
        return response

    async def reverse_geocode(self, coordinate: Coordinate) -> GeocodeResponse:
        """Resolve a coordinate into formatted addresses."""
        params = {"latlng": coordinate.as_param(), "key": self.api_key}
        raw_json = await make_request("GET", GEOCODE_API_URL, params=params, timeout=self.timeout)
        return parse_response(raw_json)
