"""Location resolution and live route monitoring for point-to-point navigation."""
from .config import create_session, load_options
from .const import DOMAIN, VERSION
from .errors import (
    GeocodeError,
    GeocodeErrorKind,
    NavigationError,
    NavigationStateError,
    PositionError,
    PositionErrorKind,
    RouteError,
    RouteErrorKind,
)
from .models import (
    Coordinate,
    Location,
    LocationSource,
    NavigationState,
    Route,
    TrafficCondition,
    TravelMode,
)
from .session import NavigationSession, SessionSnapshot

__version__ = VERSION

__all__ = [
    "DOMAIN",
    "Coordinate",
    "GeocodeError",
    "GeocodeErrorKind",
    "Location",
    "LocationSource",
    "NavigationError",
    "NavigationSession",
    "NavigationState",
    "NavigationStateError",
    "PositionError",
    "PositionErrorKind",
    "Route",
    "RouteError",
    "RouteErrorKind",
    "SessionSnapshot",
    "TrafficCondition",
    "TravelMode",
    "create_session",
    "load_options",
]
