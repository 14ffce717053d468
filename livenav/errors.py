"""Error taxonomy of the navigation engine."""
from __future__ import annotations

import enum


class NavigationError(Exception):
    """Base class for every failure the engine reports to its caller."""

    kind: enum.Enum

    def __init__(self, kind: enum.Enum, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        message = f"{type(self).__name__}: {kind.value}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)

    @property
    def user_message(self) -> str:
        """Short text suitable for a toast notification."""
        return self.detail or self.kind.value


class GeocodeErrorKind(enum.Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"


class GeocodeError(NavigationError):
    """Raised by the Geocoder when no strategy resolved the text."""

    _MESSAGES = {
        GeocodeErrorKind.INVALID_INPUT: "Please enter a location name (at least 2 characters)",
        GeocodeErrorKind.NOT_FOUND: "Location not found. Try adding the country name",
        GeocodeErrorKind.RATE_LIMITED: "Too many requests. Please try again in a moment",
        GeocodeErrorKind.SERVICE_UNAVAILABLE: "Geocoding service unavailable. Please try GPS location",
    }

    def __init__(self, kind: GeocodeErrorKind, query: str | None = None) -> None:
        self.query = query
        super().__init__(kind, query)

    @property
    def user_message(self) -> str:
        message = self._MESSAGES[self.kind]
        if self.query and self.kind is GeocodeErrorKind.NOT_FOUND:
            return f'"{self.query}" not found. Try adding the country name'
        return message


class PositionErrorKind(enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


class PositionError(NavigationError):
    """Raised or reported by the device location layer."""

    _MESSAGES = {
        PositionErrorKind.PERMISSION_DENIED: "Location access denied. Please enable location permissions",
        PositionErrorKind.TIMEOUT: "Location request timed out",
        PositionErrorKind.UNAVAILABLE: "Location information unavailable",
    }

    @property
    def user_message(self) -> str:
        return f"GPS location failed: {self._MESSAGES[self.kind]}"


class RouteErrorKind(enum.Enum):
    NO_PATH = "no_path"
    PROVIDER_ERROR = "provider_error"


class RouteError(NavigationError):
    """Raised by the RouteCalculator when the provider gave no usable route."""

    def __init__(self, kind: RouteErrorKind, status: str | None = None) -> None:
        self.status = status
        super().__init__(kind, status)

    @property
    def user_message(self) -> str:
        if self.kind is RouteErrorKind.NO_PATH:
            return "No route found to the destination"
        return f"Failed to calculate route: {self.status or 'provider error'}"


class NavigationStateError(Exception):
    """Raised when a transition is not allowed from the current state."""
