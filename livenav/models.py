"""
Domain models for the navigation engine.

This module contains pure data classes representing coordinates, locations
and routes. These classes have no dependencies on HTTP, provider APIs or
the session state machine.
"""
from __future__ import annotations

import dataclasses
import datetime
import enum


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclasses.dataclass(frozen=True)
class Coordinate:
    """Immutable WGS84 coordinate, validated on construction."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lng}")

    def as_param(self) -> str:
        """Return the "lat,lng" form used in provider query strings."""
        return f"{self.lat},{self.lng}"

    def format(self) -> str:
        """Human readable label used when no address is known."""
        return f"{self.lat:.6f}, {self.lng:.6f}"


class LocationSource(enum.Enum):
    SUGGESTION = "suggestion"
    GEOCODE_API = "geocode_api"
    FALLBACK_API = "fallback_api"
    PATTERN_MATCH = "pattern_match"
    GPS = "gps"
    STORED = "stored"  # destination restored with coordinates from trip storage


@dataclasses.dataclass(frozen=True)
class Location:
    """
    A labelled coordinate: either the user's current position or the
    trip destination. Always replaced, never mutated.
    """

    coordinate: Coordinate
    label: str
    source: LocationSource
    timestamp: datetime.datetime = dataclasses.field(default_factory=utcnow)


class TravelMode(enum.Enum):
    DRIVING = "driving"
    TRANSIT = "transit"
    BICYCLING = "bicycling"
    WALKING = "walking"


class TrafficCondition(enum.Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


@dataclasses.dataclass(frozen=True)
class Route:
    """
    Result of one route computation. A new Route replaces the old one
    wholesale; a failed computation leaves the previous Route in place.

    ``origin`` is the coordinate the route was computed from, used to
    discard results that were overtaken by a newer position.
    """

    distance_text: str
    duration_text: str
    duration_in_traffic_text: str
    traffic_condition: TrafficCondition
    mode: TravelMode
    origin: Coordinate
    alternate_exists: bool = False
    distance_meters: int = 0
    duration_seconds: int = 0
    duration_in_traffic_seconds: int = 0
    computed_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


class NavigationState(enum.Enum):
    IDLE = "idle"
    LOCATION_SET = "location_set"
    NAVIGATING_GPS = "navigating_gps"
    NAVIGATING_MANUAL = "navigating_manual"

    @property
    def is_navigating(self) -> bool:
        return self in (NavigationState.NAVIGATING_GPS, NavigationState.NAVIGATING_MANUAL)
