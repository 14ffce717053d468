"""
Low-level access to the secondary, free geocoding provider (geocode.maps.co).

The provider speaks a Nominatim-style schema: a JSON array of
``{"lat": "48.85", "lon": "2.35", "display_name": "..."}`` objects with
coordinates encoded as strings.

Example request:
https://geocode.maps.co/search?q=Paris&format=json&limit=1
"""
from __future__ import annotations

import dataclasses
import logging

from ..const import REQUEST_TIMEOUT, SEARCH_API_URL
from ..requests import make_request

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SearchResult:
    lat: float
    lon: float
    display_name: str


class MapsCoSearchProvider:
    """Secondary geocoding collaborator (free tier, no key required)."""

    def __init__(self, api_key: str | None = None, timeout: float = REQUEST_TIMEOUT, limit: int = 1) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.limit = limit

    async def search(self, query: str) -> list[SearchResult]:
        """
        Search for a place by name.

        Returns an empty list when nothing matched. Raises transport errors
        unchanged so the caller can tell an outage from a miss.
        """
        params = {"q": query, "format": "json", "limit": self.limit}
        if self.api_key:
            params["api_key"] = self.api_key
        raw_json = await make_request("GET", SEARCH_API_URL, params=params, timeout=self.timeout)

        if not isinstance(raw_json, list):
            _LOGGER.error("Unexpected search response format: %s", raw_json)
            raise ValueError("Unexpected search response format")

        results = []
        for item in raw_json:
            try:
                results.append(SearchResult(float(item["lat"]), float(item["lon"]), item.get("display_name", query)))
            except (KeyError, TypeError, ValueError) as e:
                _LOGGER.warning("Skipping malformed search result %s: %s", item, e)
        return results
