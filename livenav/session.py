"""
NavigationSession: the navigation state machine.

Responsibilities:
- Own the session snapshot (state, current position, destination, travel
  mode, route) and replace it copy-on-write on every change.
- Start and stop the position sources so that manual and GPS tracking are
  never active together.
- Recompute the route on every relevant change and keep the TrafficMonitor
  running exactly while navigating in driving mode.
- Tag every route computation with a generation number and its origin, and
  drop results that were overtaken by a newer position, mode or destination.
- Report every failure as an ``error`` event plus a notification without
  leaving the current state.

States:
    IDLE → LOCATION_SET → NAVIGATING_MANUAL | NAVIGATING_GPS → LOCATION_SET
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Callable

from .errors import (
    GeocodeError,
    NavigationError,
    NavigationStateError,
    PositionError,
    RouteError,
)
from .events import (
    EVENT_ERROR,
    EVENT_LOCATION_CHANGED,
    EVENT_NAVIGATION_STATE_CHANGED,
    EVENT_NOTIFICATION,
    EVENT_ROUTE_UPDATED,
    EventDispatcher,
    Notification,
    NotificationLevel,
)
from .geocoder import Geocoder
from .models import (
    Coordinate,
    Location,
    LocationSource,
    NavigationState,
    Route,
    TrafficCondition,
    TravelMode,
)
from .position_source import GpsPositionSource, ManualPositionSource
from .route_calculator import RouteCalculator
from .session_data import SessionSnapshot
from .traffic_monitor import TrafficMonitor

__all__ = ["NavigationSession", "SessionSnapshot"]

_LOGGER = logging.getLogger(__name__)


class NavigationSession:
    """
    One navigation feature instance: a single user travelling to a single
    destination. Create it when the feature opens and call
    ``async_shutdown()`` when it closes.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        calculator: RouteCalculator,
        manual_source: ManualPositionSource,
        gps_source: GpsPositionSource | None = None,
        mode: TravelMode = TravelMode.DRIVING,
        destination: Location | None = None,
        traffic_interval: float | None = None,
    ) -> None:
        self.geocoder = geocoder
        self.calculator = calculator
        self.manual_source = manual_source
        self.gps_source = gps_source
        if traffic_interval is None:
            self.monitor = TrafficMonitor(self._refresh_from_monitor)
        else:
            self.monitor = TrafficMonitor(self._refresh_from_monitor, traffic_interval)
        self.events = EventDispatcher()

        # Bumped whenever in-flight route results must be ignored
        self._generation = 0
        # Bumped whenever a pending manual position lookup must be ignored
        self._position_input = 0
        # Route computations started from GPS fixes
        self._route_tasks: set[asyncio.Task] = set()
        self._closed = False

        self.data = SessionSnapshot(mode=mode, destination=destination)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> NavigationState:
        return self.data.state

    @property
    def current(self) -> Location | None:
        return self.data.current

    @property
    def destination(self) -> Location | None:
        return self.data.destination

    @property
    def mode(self) -> TravelMode:
        return self.data.mode

    @property
    def route(self) -> Route | None:
        return self.data.route

    @property
    def route_change_count(self) -> int:
        return self.data.route_change_count

    @property
    def tracking_status(self) -> str:
        if self.state is NavigationState.NAVIGATING_GPS:
            return f"GPS {self.mode.name}"
        if self.state is NavigationState.NAVIGATING_MANUAL:
            return f"Manual {self.mode.name}"
        return "Not Started"

    def add_listener(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to a session event; returns the unsubscribe function."""
        return self.events.add_listener(event, callback)

    # ------------------------------------------------------------------
    # Current position
    # ------------------------------------------------------------------

    async def query_location(self, text: str) -> Location | None:
        """
        Set the current position from typed text.

        Returns the resolved Location, or None when geocoding failed (the
        failure is reported and the previous position is kept) or when the
        lookup was overtaken by a newer lookup, GPS tracking or shutdown.
        """
        ticket = self._begin_position_input()
        try:
            location = await self.manual_source.query(text)
        except GeocodeError as err:
            if not self._position_input_stale(ticket):
                self._report_error(err)
            return None
        if self._position_input_stale(ticket):
            _LOGGER.debug("Discarding superseded lookup of %r", text)
            return None
        await self._apply_location(location)
        self._notify(NotificationLevel.SUCCESS, f"Location found: {location.label}")
        return location

    async def select_suggestion(self, name: str) -> Location | None:
        """Set the current position from the suggestion list (no network)."""
        self._begin_position_input()
        location = self.geocoder.find_suggestion(name)
        if location is None:
            self._notify(NotificationLevel.ERROR, f'"{name}" is not a known suggestion')
            return None
        await self._apply_location(location)
        self._notify(NotificationLevel.SUCCESS, f"Location set to {location.label}")
        return location

    async def use_device_location(self) -> Location | None:
        """Set the current position from a single device fix."""
        ticket = self._begin_position_input()
        try:
            location = await self.manual_source.locate_once()
        except PositionError as err:
            if not self._position_input_stale(ticket):
                self._report_error(err)
            return None
        if self._position_input_stale(ticket):
            _LOGGER.debug("Discarding superseded device fix")
            return None
        await self._apply_location(location)
        self._notify(NotificationLevel.SUCCESS, "GPS location obtained successfully")
        return location

    # ------------------------------------------------------------------
    # Destination
    # ------------------------------------------------------------------

    async def set_destination(self, destination: Location) -> Route | None:
        """
        Replace the destination and, if the position is known, recompute
        the route. Navigation (and GPS tracking) continues.
        """
        self._ensure_open()
        self._invalidate_routes()
        self.data = dataclasses.replace(self.data, destination=destination, route=None)
        _LOGGER.debug("Destination set to %s", destination.label)
        self._sync_monitor()
        if self.data.current is None:
            return None
        return await self._update_route()

    async def load_trip_destination(self, trip: dict) -> Location | None:
        """
        Restore the destination of a stored trip record.

        Uses ``travelDetails.destCoordinates`` when present, otherwise
        geocodes the destination name.
        """
        self._ensure_open()
        name = (trip or {}).get("destination") or ""
        coords = ((trip or {}).get("travelDetails") or {}).get("destCoordinates")
        if coords:
            try:
                coordinate = Coordinate(float(coords["lat"]), float(coords["lng"]))
            except (KeyError, TypeError, ValueError) as e:
                _LOGGER.warning("Ignoring invalid stored destination coordinates %s: %s", coords, e)
            else:
                destination = Location(coordinate, name or coordinate.format(), LocationSource.STORED)
                await self.set_destination(destination)
                self._notify(NotificationLevel.SUCCESS, f"Trip destination loaded: {destination.label}")
                return destination

        try:
            resolved = await self.geocoder.resolve(name)
        except GeocodeError as err:
            self._report_error(err)
            return None
        destination = dataclasses.replace(resolved, label=name.strip() or resolved.label)
        await self.set_destination(destination)
        self._notify(NotificationLevel.SUCCESS, f"Trip destination found: {destination.label}")
        return destination

    # ------------------------------------------------------------------
    # Navigation transitions
    # ------------------------------------------------------------------

    async def start_manual(self) -> Route | None:
        """Start navigating from manually supplied positions."""
        self._ensure_open()
        if self.state is NavigationState.NAVIGATING_MANUAL:
            return self.data.route
        if self.data.current is None:
            raise NavigationStateError("Please set your starting location first")
        if self.data.destination is None:
            raise NavigationStateError("No destination found for this trip")

        if self.state is NavigationState.NAVIGATING_GPS:
            self._stop_gps()
            self.monitor.stop()

        self._invalidate_routes()
        self._set_state(NavigationState.NAVIGATING_MANUAL, route_change_count=0)
        self._sync_monitor()
        self._notify(NotificationLevel.SUCCESS, f"Navigation started via {self.mode.name}")
        return await self._update_route()

    def start_gps(self) -> None:
        """Start navigating from the continuous device watch."""
        self._ensure_open()
        if self.state is NavigationState.NAVIGATING_GPS:
            return
        if self.gps_source is None:
            raise NavigationStateError("GPS tracking is not available")

        if self.state is NavigationState.NAVIGATING_MANUAL:
            self.monitor.stop()

        self._position_input += 1
        self._invalidate_routes()
        self.gps_source.start(self._on_gps_update, self._on_gps_error)
        self._set_state(NavigationState.NAVIGATING_GPS, route_change_count=0)
        self._sync_monitor()
        self._notify(NotificationLevel.SUCCESS, f"GPS tracking started for {self.mode.value} navigation")

    def stop(self) -> None:
        """
        Leave navigation. The GPS watch, the traffic timer and every pending
        route result are released before this returns.
        """
        if not self.state.is_navigating:
            return
        self._stop_gps()
        self._position_input += 1
        self.monitor.stop()
        self._invalidate_routes()
        next_state = NavigationState.LOCATION_SET if self.data.current else NavigationState.IDLE
        self._set_state(next_state)
        self._sync_monitor()
        self._notify(NotificationLevel.INFO, "Navigation stopped")

    async def change_mode(self, mode: TravelMode) -> Route | None:
        """Switch travel mode and recompute the route."""
        self._ensure_open()
        if mode is self.mode:
            return self.data.route

        self._invalidate_routes()
        count = self.data.route_change_count
        if self.state.is_navigating:
            count += 1
        self.data = dataclasses.replace(self.data, mode=mode, route_change_count=count)
        # Restart so the refresh period starts from the new mode's first route
        self.monitor.stop()
        self._sync_monitor()
        self._notify(NotificationLevel.INFO, f"Travel mode changed to {mode.value}")

        if self.data.current is None or self.data.destination is None:
            return None
        return await self._update_route()

    async def refresh_route(self) -> Route | None:
        """Recompute the route on user request."""
        self._ensure_open()
        if self.data.current is None or self.data.destination is None:
            return None
        return await self._update_route()

    async def handle_traffic_update(self, severity: str, message: str) -> None:
        """
        React to an externally pushed traffic update.

        High severity alerts refresh the route whenever a position and a
        destination are known, navigating or not; others are only passed on.
        """
        self._ensure_open()
        if severity == "high":
            self._notify(NotificationLevel.WARNING, f"Traffic alert: {message}")
            if self.data.current is not None and self.data.destination is not None:
                await self._update_route()
        else:
            self._notify(NotificationLevel.INFO, f"Traffic update: {message}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_shutdown(self) -> None:
        """Tear the session down, releasing watches, timers and tasks."""
        if self._closed:
            return
        self._position_input += 1
        self.stop()
        self._stop_gps()
        self._invalidate_routes()
        await self.monitor.close()
        tasks = list(self._route_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._route_tasks.clear()
        self._closed = True
        self.events.clear()

    # ------------------------------------------------------------------
    # GPS callbacks
    # ------------------------------------------------------------------

    def _on_gps_update(self, location: Location) -> None:
        if self._closed or self.state is not NavigationState.NAVIGATING_GPS:
            return
        previous = self.data.current
        self._replace_current(location)
        if self.data.destination is None:
            return
        if (
            previous is not None
            and previous.coordinate == location.coordinate
            and previous.timestamp == location.timestamp
        ):
            # same fix republished with its address label
            return
        task = asyncio.ensure_future(self._update_route())
        self._route_tasks.add(task)
        task.add_done_callback(self._route_tasks.discard)

    def _on_gps_error(self, err: PositionError) -> None:
        # No automatic fallback to manual tracking; that is the user's call
        if self._closed:
            return
        self._report_error(err)

    # ------------------------------------------------------------------
    # Route computation
    # ------------------------------------------------------------------

    async def _refresh_from_monitor(self) -> None:
        if self.data.current is None or self.data.destination is None:
            return
        await self._update_route()

    async def _update_route(self) -> Route | None:
        """
        Compute a route for the current snapshot and apply it unless a newer
        position, mode or destination arrived while it was in flight.
        """
        data = self.data
        generation = self._generation
        origin = data.current.coordinate
        mode = data.mode
        try:
            route = await self.calculator.compute(origin, data.destination.coordinate, mode)
        except RouteError as err:
            if self._is_stale(generation, origin, mode):
                _LOGGER.debug("Ignoring failure of superseded route computation: %s", err)
                return None
            # Keep the previous route; callers must not clear it on failure
            self._report_error(err)
            return None

        if self._is_stale(generation, origin, mode):
            _LOGGER.debug("Discarding superseded %s route from %s", mode.value, origin.format())
            return None

        self.data = dataclasses.replace(self.data, route=route, last_route_update=route.computed_at)
        self.events.emit(EVENT_ROUTE_UPDATED, route)
        if route.mode is TravelMode.DRIVING and route.traffic_condition is TrafficCondition.HEAVY:
            self._notify(
                NotificationLevel.WARNING,
                f"Traffic alert: heavy traffic, {route.duration_in_traffic_text} to destination",
            )
        return route

    def _is_stale(self, generation: int, origin: Coordinate, mode: TravelMode) -> bool:
        current = self.data.current
        return (
            self._closed
            or generation != self._generation
            or current is None
            or current.coordinate != origin
            or self.data.mode is not mode
        )

    def _invalidate_routes(self) -> None:
        """Make every in-flight route result stale."""
        self._generation += 1
        tasks = list(self._route_tasks)
        self._route_tasks.clear()
        for task in tasks:
            task.cancel()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _apply_location(self, location: Location) -> None:
        self._replace_current(location)
        if self.state is NavigationState.IDLE:
            self._set_state(NavigationState.LOCATION_SET)
        if self.data.destination is not None:
            await self._update_route()

    def _replace_current(self, location: Location) -> None:
        self.data = dataclasses.replace(self.data, current=location)
        self.events.emit(EVENT_LOCATION_CHANGED, location)

    def _set_state(self, state: NavigationState, **changes) -> None:
        previous = self.data.state
        self.data = dataclasses.replace(self.data, state=state, **changes)
        if previous is not state:
            _LOGGER.debug("Navigation state %s -> %s", previous.value, state.value)
            self.events.emit(EVENT_NAVIGATION_STATE_CHANGED, state)

    def _sync_monitor(self) -> None:
        """Run the traffic monitor iff navigating in driving mode."""
        should_run = self.state.is_navigating and self.mode is TravelMode.DRIVING
        if should_run and not self.monitor.running:
            self.monitor.start()
            self._notify(NotificationLevel.INFO, "Smart traffic monitoring started")
        elif not should_run:
            self.monitor.stop()
        if self.data.monitoring_traffic != should_run:
            self.data = dataclasses.replace(self.data, monitoring_traffic=should_run)

    def _stop_gps(self) -> None:
        if self.gps_source is not None:
            self.gps_source.stop()

    def _ensure_open(self) -> None:
        if self._closed:
            raise NavigationStateError("Navigation session has been shut down")

    def _ensure_manual_input_allowed(self) -> None:
        self._ensure_open()
        if self.state is NavigationState.NAVIGATING_GPS:
            raise NavigationStateError("Position is supplied by GPS tracking; stop it first")

    def _begin_position_input(self) -> int:
        """Start a manual position lookup; any older pending lookup becomes stale."""
        self._ensure_manual_input_allowed()
        self._position_input += 1
        return self._position_input

    def _position_input_stale(self, ticket: int) -> bool:
        return (
            self._closed
            or ticket != self._position_input
            or self.state is NavigationState.NAVIGATING_GPS
        )

    def _notify(self, level: NotificationLevel, message: str) -> None:
        self.events.emit(EVENT_NOTIFICATION, Notification(level, message))

    def _report_error(self, err: NavigationError) -> None:
        _LOGGER.warning("%s", err)
        self.events.emit(EVENT_ERROR, err)
        self._notify(NotificationLevel.ERROR, err.user_message)
