"""
Geocoder: resolves free-text place names into Locations.

Resolution is an ordered list of strategies tried in sequence; the first one
that yields a Location wins:
    1. curated suggestion list     (no network)
    2. primary geocoding provider  (Google)
    3. secondary free provider     (geocode.maps.co)
    4. known-city pattern table    (no network)

Each strategy is a plain coroutine ``(query) -> Location`` that raises
GeocodeError when it cannot resolve the query, so every step can be tested
and mocked on its own. No strategy retries.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging

import aiohttp

from .const import (
    CITY_PATTERNS,
    LOCATION_SUGGESTIONS,
    MIN_QUERY_LENGTH,
    STATUS_INVALID_REQUEST,
    STATUS_OK,
    STATUS_OVER_QUERY_LIMIT,
    STATUS_REQUEST_DENIED,
)
from .errors import GeocodeError, GeocodeErrorKind
from .models import Coordinate, Location, LocationSource
from .requests import ApiResponseError

_LOGGER = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (asyncio.TimeoutError, TimeoutError, aiohttp.ClientError, ApiResponseError, ValueError)


@dataclasses.dataclass(frozen=True)
class _StepFailure:
    step: str
    kind: GeocodeErrorKind
    transport: bool = False  # provider unreachable, as opposed to an answer


class _ProviderStepError(GeocodeError):
    """GeocodeError raised by a network strategy, remembering why it failed."""

    def __init__(self, kind: GeocodeErrorKind, query: str, transport: bool = False) -> None:
        super().__init__(kind, query)
        self.transport = transport


def _status_kind(status: str) -> GeocodeErrorKind:
    if status == STATUS_OVER_QUERY_LIMIT:
        return GeocodeErrorKind.RATE_LIMITED
    if status in (STATUS_REQUEST_DENIED, STATUS_INVALID_REQUEST):
        return GeocodeErrorKind.SERVICE_UNAVAILABLE
    return GeocodeErrorKind.NOT_FOUND


def _transport_failure(exc: Exception, query: str) -> _ProviderStepError:
    """Classify a raised provider error."""
    if isinstance(exc, ApiResponseError):
        if exc.status == 429:
            return _ProviderStepError(GeocodeErrorKind.RATE_LIMITED, query)
        if exc.status in (401, 403):
            return _ProviderStepError(GeocodeErrorKind.SERVICE_UNAVAILABLE, query)
    return _ProviderStepError(GeocodeErrorKind.SERVICE_UNAVAILABLE, query, transport=True)


class Geocoder:
    """
    Tiered geocoder.

    Args:
        primary: object with ``async geocode(address)`` and
            ``async reverse_geocode(coordinate)`` returning GeocodeResponse.
        secondary: object with ``async search(query)`` returning a list of
            SearchResult, or None to skip the free fallback.
    """

    def __init__(
        self,
        primary,
        secondary=None,
        suggestions: list[tuple[str, float, float]] | None = None,
        city_patterns: dict[str, tuple[float, float]] | None = None,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.suggestions = LOCATION_SUGGESTIONS if suggestions is None else suggestions
        self.city_patterns = CITY_PATTERNS if city_patterns is None else city_patterns
        self.strategies = [
            ("suggestion", self.match_suggestion),
            ("primary", self.query_primary),
            ("secondary", self.query_secondary),
            ("pattern", self.match_city_pattern),
        ]

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def resolve(self, text: str) -> Location:
        """
        Resolve text into a Location.

        Raises:
            GeocodeError: INVALID_INPUT for queries shorter than two
                characters, otherwise the kind derived from the provider
                failures (RATE_LIMITED, SERVICE_UNAVAILABLE or NOT_FOUND).
        """
        query = (text or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise GeocodeError(GeocodeErrorKind.INVALID_INPUT, query)

        failures: list[_StepFailure] = []
        for step, strategy in self.strategies:
            try:
                location = await strategy(query)
            except _ProviderStepError as e:
                failures.append(_StepFailure(step, e.kind, e.transport))
                continue
            except GeocodeError as e:
                _LOGGER.debug("Geocoding step %s missed %r: %s", step, query, e.kind.value)
                continue
            _LOGGER.debug("Resolved %r via %s: %s", query, step, location.coordinate)
            return location

        kind = self._select_failure(failures)
        _LOGGER.warning("Could not geocode %r: %s", query, kind.value)
        raise GeocodeError(kind, query)

    async def reverse(self, coordinate: Coordinate) -> str:
        """
        Best-effort label for a coordinate.

        Never raises; falls back to the formatted coordinate.
        """
        try:
            response = await self.primary.reverse_geocode(coordinate)
        except _TRANSPORT_ERRORS as e:
            _LOGGER.warning("Reverse geocoding failed for %s: %s", coordinate.format(), e)
            return coordinate.format()
        if response.status == STATUS_OK and response.results and response.results[0].formatted_address:
            return response.results[0].formatted_address
        _LOGGER.debug("Reverse geocoding for %s returned %s", coordinate.format(), response.status)
        return coordinate.format()

    def find_suggestion(self, name: str) -> Location | None:
        """Return the suggestion named ``name`` (case-insensitive), if any."""
        wanted = name.strip().lower()
        for label, lat, lng in self.suggestions:
            if label.lower() == wanted:
                return Location(Coordinate(lat, lng), label, LocationSource.SUGGESTION)
        return None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def match_suggestion(self, query: str) -> Location:
        """Substring match in either direction; the first listed suggestion wins."""
        needle = query.lower()
        for label, lat, lng in self.suggestions:
            name = label.lower()
            if needle in name or name in needle:
                return Location(Coordinate(lat, lng), label, LocationSource.SUGGESTION)
        raise GeocodeError(GeocodeErrorKind.NOT_FOUND, query)

    async def query_primary(self, query: str) -> Location:
        try:
            response = await self.primary.geocode(query)
        except _TRANSPORT_ERRORS as e:
            _LOGGER.warning("Primary geocoding failed for %r: %s", query, e)
            raise _transport_failure(e, query) from e

        if response.status == STATUS_OK:
            for result in response.results:
                if result.coordinate is not None:
                    return Location(
                        result.coordinate,
                        result.formatted_address or query,
                        LocationSource.GEOCODE_API,
                    )
        _LOGGER.warning(
            "Primary geocoding returned %s for %r %s",
            response.status, query, response.error_message or "",
        )
        raise _ProviderStepError(_status_kind(response.status), query)

    async def query_secondary(self, query: str) -> Location:
        if self.secondary is None:
            raise GeocodeError(GeocodeErrorKind.NOT_FOUND, query)
        try:
            results = await self.secondary.search(query)
        except _TRANSPORT_ERRORS as e:
            _LOGGER.warning("Fallback geocoding failed for %r: %s", query, e)
            raise _transport_failure(e, query) from e

        for result in results:
            try:
                coordinate = Coordinate(result.lat, result.lon)
            except ValueError as e:
                _LOGGER.warning("Fallback geocoding returned invalid coordinate: %s", e)
                continue
            return Location(coordinate, result.display_name or query, LocationSource.FALLBACK_API)
        raise _ProviderStepError(GeocodeErrorKind.NOT_FOUND, query)

    async def match_city_pattern(self, query: str) -> Location:
        normalized = query.lower()
        for pattern, (lat, lng) in self.city_patterns.items():
            if pattern in normalized:
                _LOGGER.debug("Using pattern match for %s", pattern)
                return Location(Coordinate(lat, lng), query, LocationSource.PATTERN_MATCH)
        raise GeocodeError(GeocodeErrorKind.NOT_FOUND, query)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _select_failure(failures: list[_StepFailure]) -> GeocodeErrorKind:
        """Pick the error reported to the user from the provider failures."""
        kinds = [f.kind for f in failures]
        if GeocodeErrorKind.RATE_LIMITED in kinds:
            return GeocodeErrorKind.RATE_LIMITED
        if any(f.kind is GeocodeErrorKind.SERVICE_UNAVAILABLE and not f.transport for f in failures):
            return GeocodeErrorKind.SERVICE_UNAVAILABLE
        if failures and all(f.transport for f in failures):
            return GeocodeErrorKind.SERVICE_UNAVAILABLE
        return GeocodeErrorKind.NOT_FOUND
