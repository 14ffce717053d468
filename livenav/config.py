"""
Engine options: validation, environment loading and session wiring.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import voluptuous as vol
from dotenv import load_dotenv

from .api.directions import GoogleDirectionsProvider
from .api.geocoding import GoogleGeocodingProvider
from .api.search import MapsCoSearchProvider
from .const import (
    MANUAL_FIX_MAXIMUM_AGE,
    MANUAL_FIX_TIMEOUT,
    REQUEST_TIMEOUT,
    TRAFFIC_MONITOR_INTERVAL,
    WATCH_FIX_MAXIMUM_AGE,
    WATCH_FIX_TIMEOUT,
)
from .device_location import DeviceLocationApi, PositionOptions
from .geocoder import Geocoder
from .models import TravelMode
from .position_source import GpsPositionSource, ManualPositionSource
from .route_calculator import RouteCalculator
from .session import NavigationSession

_LOGGER = logging.getLogger(__name__)

positive_seconds = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))
interval_seconds = vol.All(vol.Coerce(float), vol.Range(min=10))
travel_mode = vol.All(vol.Lower, vol.In([m.value for m in TravelMode]))

OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Required('google_api_key'): vol.All(str, vol.Length(min=1)),
        vol.Optional('search_api_key', default=None): vol.Any(None, str),
        vol.Optional('enable_fallback_search', default=True): vol.Boolean(),
        vol.Optional('default_mode', default=TravelMode.DRIVING.value): travel_mode,
        vol.Optional('traffic_interval', default=TRAFFIC_MONITOR_INTERVAL): interval_seconds,
        vol.Optional('request_timeout', default=REQUEST_TIMEOUT): positive_seconds,
        vol.Optional('manual_fix_timeout', default=MANUAL_FIX_TIMEOUT): positive_seconds,
        vol.Optional('manual_maximum_age', default=MANUAL_FIX_MAXIMUM_AGE): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Optional('watch_fix_timeout', default=WATCH_FIX_TIMEOUT): positive_seconds,
        vol.Optional('watch_maximum_age', default=WATCH_FIX_MAXIMUM_AGE): vol.All(vol.Coerce(float), vol.Range(min=0)),
    }
)

# Environment variable → option key
ENV_OPTIONS = {
    'GOOGLE_MAPS_API_KEY': 'google_api_key',
    'GEOCODE_MAPS_CO_API_KEY': 'search_api_key',
    'LIVENAV_DEFAULT_MODE': 'default_mode',
    'LIVENAV_TRAFFIC_INTERVAL': 'traffic_interval',
    'LIVENAV_REQUEST_TIMEOUT': 'request_timeout',
}


def load_options(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build validated options from the environment (and a .env file, if any)
    with ``overrides`` taking precedence.

    Raises vol.Invalid when the result does not satisfy OPTIONS_SCHEMA.
    """
    load_dotenv()
    options: Dict[str, Any] = {}
    for env_name, key in ENV_OPTIONS.items():
        value = os.getenv(env_name)
        if value:
            options[key] = value
    options.update(overrides or {})
    return OPTIONS_SCHEMA(options)


def create_session(options: Dict[str, Any], device: Optional[DeviceLocationApi] = None) -> NavigationSession:
    """Wire providers, geocoder, position sources and calculator into a session."""
    options = OPTIONS_SCHEMA(options)
    timeout = options['request_timeout']

    primary = GoogleGeocodingProvider(options['google_api_key'], timeout=timeout)
    secondary = None
    if options['enable_fallback_search']:
        secondary = MapsCoSearchProvider(options['search_api_key'], timeout=timeout)
    geocoder = Geocoder(primary, secondary)

    manual_source = ManualPositionSource(
        geocoder,
        device,
        PositionOptions(True, options['manual_fix_timeout'], options['manual_maximum_age']),
    )
    gps_source = None
    if device is not None:
        gps_source = GpsPositionSource(
            geocoder,
            device,
            PositionOptions(True, options['watch_fix_timeout'], options['watch_maximum_age']),
        )
    else:
        _LOGGER.debug("No device location configured, GPS tracking disabled")

    calculator = RouteCalculator(GoogleDirectionsProvider(options['google_api_key'], timeout=timeout))
    return NavigationSession(
        geocoder,
        calculator,
        manual_source,
        gps_source,
        mode=TravelMode(options['default_mode']),
        traffic_interval=options['traffic_interval'],
    )
