"""
RouteCalculator: one routing request per call, one complete Route per success.

Traffic classification compares the traffic-aware duration of the primary
leg with its free-flow duration:
    delay < 15 %   → LIGHT
    delay < 40 %   → MODERATE
    otherwise      → HEAVY
Only driving requests carry traffic data; every other mode reports LIGHT.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp

from .const import (
    HEAVY_DELAY_PCT,
    MODERATE_DELAY_PCT,
    STATUS_NOT_FOUND,
    STATUS_OK,
    STATUS_ZERO_RESULTS,
    TRAFFIC_MODEL,
    TRANSIT_MODES,
    TRANSIT_ROUTING_PREFERENCE,
)
from .errors import RouteError, RouteErrorKind
from .models import Coordinate, Route, TrafficCondition, TravelMode
from .requests import ApiResponseError

_LOGGER = logging.getLogger(__name__)


def classify_traffic(normal_seconds: float, traffic_seconds: float | None) -> TrafficCondition:
    """Classify the delay of ``traffic_seconds`` over ``normal_seconds``."""
    if traffic_seconds is None or normal_seconds <= 0:
        return TrafficCondition.LIGHT
    delay_pct = (traffic_seconds - normal_seconds) * 100 / normal_seconds
    if delay_pct < MODERATE_DELAY_PCT:
        return TrafficCondition.LIGHT
    if delay_pct < HEAVY_DELAY_PCT:
        return TrafficCondition.MODERATE
    return TrafficCondition.HEAVY


def build_request_options(mode: TravelMode) -> dict:
    """Provider options for a request in ``mode``."""
    options = {"alternatives": True, "units": "metric"}
    if mode is TravelMode.DRIVING:
        options["departure_time"] = "now"
        options["traffic_model"] = TRAFFIC_MODEL
    elif mode is TravelMode.TRANSIT:
        options["departure_time"] = "now"
        options["transit_modes"] = list(TRANSIT_MODES)
        options["transit_routing_preference"] = TRANSIT_ROUTING_PREFERENCE
    return options


class RouteCalculator:
    """
    Computes routes through the routing collaborator.

    Args:
        provider: object with ``async route(origin, destination, mode, options)``
            returning a DirectionsResponse.
    """

    def __init__(self, provider) -> None:
        self.provider = provider

    async def compute(self, origin: Coordinate, destination: Coordinate, mode: TravelMode) -> Route:
        """
        Request a route and derive its traffic condition.

        Raises:
            RouteError: NO_PATH when the provider found no route,
                PROVIDER_ERROR for any other failure.
        """
        options = build_request_options(mode)
        try:
            response = await self.provider.route(origin, destination, mode, options)
        except (asyncio.TimeoutError, TimeoutError) as e:
            _LOGGER.warning("Timeout while calculating %s route", mode.value)
            raise RouteError(RouteErrorKind.PROVIDER_ERROR, "TIMEOUT") from e
        except (aiohttp.ClientError, ApiResponseError, ValueError) as e:
            _LOGGER.warning("Routing provider failed for %s route: %s", mode.value, e)
            raise RouteError(RouteErrorKind.PROVIDER_ERROR, type(e).__name__) from e

        if response.status in (STATUS_ZERO_RESULTS, STATUS_NOT_FOUND):
            _LOGGER.warning("No %s route found: %s", mode.value, response.status)
            raise RouteError(RouteErrorKind.NO_PATH, response.status)
        if response.status != STATUS_OK:
            _LOGGER.warning(
                "Directions request failed: %s %s", response.status, response.error_message or ""
            )
            raise RouteError(RouteErrorKind.PROVIDER_ERROR, response.status)
        if not response.routes:
            raise RouteError(RouteErrorKind.NO_PATH, response.status)
        if not response.routes[0].legs:
            _LOGGER.error("Primary route has no legs")
            raise RouteError(RouteErrorKind.PROVIDER_ERROR, "NO_LEGS")

        leg = response.routes[0].legs[0]
        in_traffic = leg.duration_in_traffic or leg.duration
        if mode is TravelMode.DRIVING:
            condition = classify_traffic(leg.duration.value, in_traffic.value)
        else:
            condition = TrafficCondition.LIGHT

        route = Route(
            distance_text=leg.distance.text,
            duration_text=leg.duration.text,
            duration_in_traffic_text=in_traffic.text,
            traffic_condition=condition,
            mode=mode,
            origin=origin,
            alternate_exists=len(response.routes) > 1,
            distance_meters=leg.distance.value,
            duration_seconds=leg.duration.value,
            duration_in_traffic_seconds=in_traffic.value,
        )
        _LOGGER.debug(
            "Route %s: %s, %s (%s)",
            mode.value, route.distance_text, route.duration_in_traffic_text, condition.value,
        )
        return route
