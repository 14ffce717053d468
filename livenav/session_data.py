"""
SessionSnapshot: immutable view of one navigation session shared with the
map renderer and other listeners.

This is a pure data module with no network or asyncio dependencies.
"""
from __future__ import annotations

import dataclasses
import datetime

from .models import Location, NavigationState, Route, TravelMode


@dataclasses.dataclass(frozen=True)
class SessionSnapshot:
    """
    Typed, copy-on-write snapshot of the navigation session.

    Always replace via dataclasses.replace(), never mutate in place.
    """

    state: NavigationState = NavigationState.IDLE

    # User position; replaced on every manual query or GPS fix
    current: Location | None = None

    # Trip destination; set once per trip
    destination: Location | None = None

    mode: TravelMode = TravelMode.DRIVING

    # Last successfully computed route (kept on failed recomputations)
    route: Route | None = None

    # Travel-mode switches during active navigation, reset when navigation starts
    route_change_count: int = 0

    monitoring_traffic: bool = False

    last_route_update: datetime.datetime | None = None
