"""
Tests for NavigationSession: state transitions, position source exclusivity,
traffic monitor lifecycle, stale route handling and shutdown.
"""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock

from livenav.errors import GeocodeError, NavigationStateError, PositionError, PositionErrorKind, RouteError, RouteErrorKind
from livenav.events import (
    EVENT_ERROR,
    EVENT_LOCATION_CHANGED,
    EVENT_NAVIGATION_STATE_CHANGED,
    EVENT_NOTIFICATION,
    EVENT_ROUTE_UPDATED,
    NotificationLevel,
)
from livenav.models import Coordinate, LocationSource, NavigationState, TrafficCondition, TravelMode

from .test_common import (
    MUMBAI,
    PUNE,
    FakeDeviceLocation,
    make_directions_response,
    make_geocode_response,
    make_location,
    make_primary,
    make_routing_provider,
    make_secondary,
    make_session,
    record,
    settle,
)


def pune():
    return make_location(18.5204, 73.8567, "Pune, India")


class SessionTestCase(unittest.IsolatedAsyncioTestCase):

    def _session(self, **kwargs):
        session = make_session(**kwargs)
        self.addAsyncCleanup(session.async_shutdown)
        return session

    async def _ready_session(self, **kwargs):
        """Session in LOCATION_SET at Mumbai with Pune as destination."""
        session = self._session(**kwargs)
        await session.set_destination(pune())
        await session.query_location("Mumbai")
        return session


class TestPositionInput(SessionTestCase):

    async def test_initial_state(self):
        session = self._session()
        self.assertIs(session.state, NavigationState.IDLE)
        self.assertIsNone(session.current)
        self.assertEqual(session.tracking_status, "Not Started")

    async def test_query_location_moves_to_location_set(self):
        routing = make_routing_provider()
        session = self._session(routing=routing)
        states = record(session, EVENT_NAVIGATION_STATE_CHANGED)
        locations = record(session, EVENT_LOCATION_CHANGED)

        location = await session.query_location("Mumbai")

        self.assertIs(session.state, NavigationState.LOCATION_SET)
        self.assertEqual(session.current, location)
        self.assertEqual(states, [NavigationState.LOCATION_SET])
        self.assertEqual(locations, [location])
        # no destination yet, so no route
        routing.route.assert_not_awaited()
        self.assertIsNone(session.route)

    async def test_failed_query_keeps_state_and_reports(self):
        session = self._session(
            primary=make_primary(make_geocode_response("ZERO_RESULTS")),
            secondary=make_secondary([]),
        )
        errors = record(session, EVENT_ERROR)
        notes = record(session, EVENT_NOTIFICATION)

        result = await session.query_location("Nowhere Village")

        self.assertIsNone(result)
        self.assertIs(session.state, NavigationState.IDLE)
        self.assertIsInstance(errors[0], GeocodeError)
        self.assertEqual(notes[-1].level, NotificationLevel.ERROR)
        self.assertIn("Nowhere Village", notes[-1].message)

    async def test_query_with_destination_computes_route(self):
        session = await self._ready_session()
        self.assertIsNotNone(session.route)
        self.assertEqual(session.route.origin, MUMBAI)

    async def test_select_suggestion(self):
        routing = make_routing_provider()
        session = self._session(routing=routing)

        location = await session.select_suggestion("Tokyo, Japan")

        self.assertEqual(location.label, "Tokyo, Japan")
        self.assertIs(session.state, NavigationState.LOCATION_SET)

    async def test_unknown_suggestion_is_rejected(self):
        session = self._session()
        notes = record(session, EVENT_NOTIFICATION)

        self.assertIsNone(await session.select_suggestion("Atlantis"))
        self.assertIs(session.state, NavigationState.IDLE)
        self.assertEqual(notes[-1].level, NotificationLevel.ERROR)

    async def test_use_device_location(self):
        session = self._session(device=FakeDeviceLocation(PUNE))

        location = await session.use_device_location()

        self.assertEqual(location.coordinate, PUNE)
        self.assertEqual(location.label, "Gateway of India, Mumbai")
        self.assertIs(location.source, LocationSource.GPS)

    async def test_device_location_failure_reported(self):
        device = FakeDeviceLocation()
        device.get_current_position = AsyncMock(side_effect=PositionError(PositionErrorKind.PERMISSION_DENIED))
        session = self._session(device=device)
        errors = record(session, EVENT_ERROR)

        self.assertIsNone(await session.use_device_location())
        self.assertEqual(errors[0].kind, PositionErrorKind.PERMISSION_DENIED)
        self.assertIs(session.state, NavigationState.IDLE)


class TestSupersededLookups(SessionTestCase):
    """A lookup that finishes after the position moved on must not win."""

    def _held_primary(self):
        release = asyncio.Event()
        primary = make_primary()

        async def held_geocode(address):
            await release.wait()
            return make_geocode_response(lat=10.0, lng=10.0, address="Somewhere, Nowhere")

        primary.geocode = AsyncMock(side_effect=held_geocode)
        return primary, release

    async def test_lookup_finishing_after_gps_start_is_ignored(self):
        primary, release = self._held_primary()
        device = FakeDeviceLocation()
        session = self._session(primary=primary, device=device)
        pending = asyncio.ensure_future(session.query_location("Somewhere typed"))
        await settle(0.01)

        session.start_gps()
        device.emit_fix(Coordinate(19.0, 72.8))
        release.set()
        await settle()

        self.assertIsNone(await pending)
        self.assertIs(session.state, NavigationState.NAVIGATING_GPS)
        self.assertEqual(session.current.coordinate, Coordinate(19.0, 72.8))

    async def test_older_lookup_does_not_overwrite_newer_one(self):
        primary, release = self._held_primary()
        session = self._session(primary=primary)
        locations = record(session, EVENT_LOCATION_CHANGED)
        pending = asyncio.ensure_future(session.query_location("Somewhere typed"))
        await settle(0.01)

        newer = await session.query_location("Pune")
        release.set()

        self.assertIsNone(await pending)
        self.assertEqual(session.current, newer)
        self.assertEqual(session.current.coordinate, PUNE)
        self.assertEqual(locations, [newer])

    async def test_device_fix_arriving_after_suggestion_is_ignored(self):
        release = asyncio.Event()
        device = FakeDeviceLocation(MUMBAI)
        one_shot = device.get_current_position

        async def held_fix(options):
            await release.wait()
            return await one_shot(options)

        device.get_current_position = AsyncMock(side_effect=held_fix)
        session = self._session(device=device)
        pending = asyncio.ensure_future(session.use_device_location())
        await settle(0.01)

        await session.select_suggestion("Pune, India")
        release.set()

        self.assertIsNone(await pending)
        self.assertEqual(session.current.coordinate, PUNE)

    async def test_lookup_finishing_after_shutdown_is_ignored(self):
        primary, release = self._held_primary()
        routing = make_routing_provider()
        session = self._session(primary=primary, routing=routing)
        await session.set_destination(pune())
        errors = record(session, EVENT_ERROR)
        pending = asyncio.ensure_future(session.query_location("Somewhere typed"))
        await settle(0.01)

        await session.async_shutdown()
        release.set()

        self.assertIsNone(await pending)
        self.assertIs(session.state, NavigationState.IDLE)
        self.assertIsNone(session.current)
        self.assertEqual(errors, [])
        routing.route.assert_not_awaited()


class TestManualNavigation(SessionTestCase):

    async def test_requires_current_position(self):
        session = self._session()
        await session.set_destination(pune())
        with self.assertRaises(NavigationStateError):
            await session.start_manual()
        self.assertIs(session.state, NavigationState.IDLE)

    async def test_requires_destination(self):
        session = self._session()
        await session.query_location("Mumbai")
        with self.assertRaises(NavigationStateError):
            await session.start_manual()
        self.assertIs(session.state, NavigationState.LOCATION_SET)

    async def test_start_manual_driving(self):
        session = await self._ready_session()

        route = await session.start_manual()

        self.assertIs(session.state, NavigationState.NAVIGATING_MANUAL)
        self.assertIs(session.route, route)
        self.assertTrue(session.monitor.running)
        self.assertTrue(session.data.monitoring_traffic)
        self.assertEqual(session.tracking_status, "Manual DRIVING")

    async def test_start_manual_walking_has_no_monitor(self):
        session = await self._ready_session(mode=TravelMode.WALKING)

        await session.start_manual()

        self.assertFalse(session.monitor.running)
        self.assertFalse(session.data.monitoring_traffic)

    async def test_start_manual_twice_is_noop(self):
        routing = make_routing_provider()
        session = await self._ready_session(routing=routing)
        await session.start_manual()
        calls = routing.route.await_count

        await session.start_manual()

        self.assertEqual(routing.route.await_count, calls)

    async def test_manual_position_updates_while_navigating(self):
        session = await self._ready_session()
        await session.start_manual()

        await session.query_location("Pune")

        self.assertIs(session.state, NavigationState.NAVIGATING_MANUAL)
        self.assertEqual(session.route.origin, PUNE)

    async def test_heavy_traffic_notified(self):
        session = await self._ready_session(routing=make_routing_provider(make_directions_response(1000, 1500)))
        notes = record(session, EVENT_NOTIFICATION)

        route = await session.start_manual()

        self.assertIs(route.traffic_condition, TrafficCondition.HEAVY)
        self.assertTrue(any("heavy traffic" in n.message for n in notes))

    async def test_monitor_tick_refreshes_route(self):
        routing = make_routing_provider()
        session = await self._ready_session(routing=routing)
        await session.start_manual()
        calls = routing.route.await_count

        await settle(0.08)

        self.assertGreater(routing.route.await_count, calls)


class TestGpsNavigation(SessionTestCase):

    async def test_start_gps_from_idle(self):
        device = FakeDeviceLocation()
        session = self._session(device=device)

        session.start_gps()

        self.assertIs(session.state, NavigationState.NAVIGATING_GPS)
        self.assertEqual(len(device.watches), 1)
        self.assertEqual(session.tracking_status, "GPS DRIVING")

    async def test_fix_updates_position_and_route(self):
        device = FakeDeviceLocation()
        session = self._session(device=device)
        await session.set_destination(pune())
        routes = record(session, EVENT_ROUTE_UPDATED)
        session.start_gps()

        device.emit_fix(Coordinate(19.0, 72.8))
        await settle()

        self.assertEqual(session.current.coordinate, Coordinate(19.0, 72.8))
        self.assertIs(session.current.source, LocationSource.GPS)
        self.assertTrue(routes)
        self.assertEqual(routes[-1].origin, Coordinate(19.0, 72.8))

    async def test_address_label_does_not_recompute_route(self):
        device = FakeDeviceLocation()
        routing = make_routing_provider()
        session = self._session(device=device, routing=routing, traffic_interval=10)
        await session.set_destination(pune())
        locations = record(session, EVENT_LOCATION_CHANGED)
        session.start_gps()

        device.emit_fix(Coordinate(19.0, 72.8))
        await settle()

        self.assertEqual([loc.label for loc in locations], ["19.000000, 72.800000", "Gateway of India, Mumbai"])
        self.assertEqual(session.current.label, "Gateway of India, Mumbai")
        self.assertEqual(routing.route.await_count, 1)

    async def test_manual_input_rejected_during_gps(self):
        session = await self._ready_session()
        session.start_gps()

        with self.assertRaises(NavigationStateError):
            await session.query_location("Pune")
        with self.assertRaises(NavigationStateError):
            await session.select_suggestion("Pune, India")
        with self.assertRaises(NavigationStateError):
            await session.use_device_location()

    async def test_gps_error_keeps_state(self):
        device = FakeDeviceLocation()
        session = self._session(device=device)
        errors = record(session, EVENT_ERROR)
        session.start_gps()

        device.emit_error(PositionError(PositionErrorKind.TIMEOUT))

        self.assertIs(session.state, NavigationState.NAVIGATING_GPS)
        self.assertEqual(errors[0].kind, PositionErrorKind.TIMEOUT)
        self.assertEqual(len(device.watches), 1)

    async def test_switch_gps_to_manual_releases_watch(self):
        device = FakeDeviceLocation()
        session = await self._ready_session(device=device)
        session.start_gps()
        handle = next(iter(device.watches))

        await session.start_manual()

        self.assertIs(session.state, NavigationState.NAVIGATING_MANUAL)
        self.assertEqual(device.cleared, [handle])
        self.assertEqual(device.watches, {})
        self.assertFalse(session.gps_source.active)
        self.assertTrue(session.monitor.running)

    async def test_switch_manual_to_gps(self):
        device = FakeDeviceLocation()
        session = await self._ready_session(device=device)
        await session.start_manual()

        session.start_gps()

        self.assertIs(session.state, NavigationState.NAVIGATING_GPS)
        self.assertEqual(len(device.watches), 1)
        self.assertTrue(session.monitor.running)

    async def test_start_gps_resets_route_change_count(self):
        session = await self._ready_session()
        await session.start_manual()
        await session.change_mode(TravelMode.WALKING)
        self.assertEqual(session.route_change_count, 1)

        session.start_gps()

        self.assertEqual(session.route_change_count, 0)


class TestStop(SessionTestCase):

    async def test_stop_gps_with_position_returns_to_location_set(self):
        device = FakeDeviceLocation()
        session = await self._ready_session(device=device)
        session.start_gps()

        session.stop()

        self.assertIs(session.state, NavigationState.LOCATION_SET)
        self.assertEqual(device.watches, {})
        self.assertFalse(session.monitor.running)
        self.assertFalse(session.data.monitoring_traffic)
        self.assertEqual(session.tracking_status, "Not Started")

    async def test_stop_gps_without_position_returns_to_idle(self):
        session = self._session()
        session.start_gps()

        session.stop()

        self.assertIs(session.state, NavigationState.IDLE)

    async def test_stop_when_not_navigating_is_noop(self):
        session = self._session()
        states = record(session, EVENT_NAVIGATION_STATE_CHANGED)
        session.stop()
        self.assertEqual(states, [])

    async def test_no_route_published_after_stop(self):
        routing = make_routing_provider()

        async def slow_route(*args):
            await asyncio.sleep(0.03)
            return make_directions_response()

        routing.route = AsyncMock(side_effect=slow_route)
        device = FakeDeviceLocation()
        session = self._session(routing=routing, device=device)
        await session.set_destination(pune())
        routes = record(session, EVENT_ROUTE_UPDATED)
        session.start_gps()

        device.emit_fix(MUMBAI)
        await asyncio.sleep(0.01)
        session.stop()
        await settle(0.06)

        self.assertEqual(routes, [])


class TestModeChange(SessionTestCase):

    async def test_driving_to_walking_during_gps(self):
        session = await self._ready_session()
        session.start_gps()
        self.assertTrue(session.monitor.running)

        route = await session.change_mode(TravelMode.WALKING)

        self.assertFalse(session.monitor.running)
        self.assertFalse(session.data.monitoring_traffic)
        self.assertEqual(session.route_change_count, 1)
        self.assertIs(route.mode, TravelMode.WALKING)
        self.assertIs(session.state, NavigationState.NAVIGATING_GPS)

        await session.change_mode(TravelMode.DRIVING)

        self.assertTrue(session.monitor.running)
        self.assertEqual(session.route_change_count, 2)

    async def test_same_mode_is_noop(self):
        routing = make_routing_provider()
        session = await self._ready_session(routing=routing)
        calls = routing.route.await_count

        await session.change_mode(TravelMode.DRIVING)

        self.assertEqual(routing.route.await_count, calls)
        self.assertEqual(session.route_change_count, 0)

    async def test_mode_change_before_navigation_not_counted(self):
        session = await self._ready_session()

        route = await session.change_mode(TravelMode.TRANSIT)

        self.assertIs(route.mode, TravelMode.TRANSIT)
        self.assertEqual(session.route_change_count, 0)
        self.assertIs(session.state, NavigationState.LOCATION_SET)

    async def test_in_flight_route_for_old_mode_discarded(self):
        routing = make_routing_provider()

        async def route_by_mode(origin, destination, mode, options):
            if mode is TravelMode.DRIVING:
                await asyncio.sleep(0.04)
                return make_directions_response(1000, 1500)
            return make_directions_response(2000)

        session = await self._ready_session(routing=routing)
        routing.route = AsyncMock(side_effect=route_by_mode)
        routes = record(session, EVENT_ROUTE_UPDATED)

        pending = asyncio.ensure_future(session.refresh_route())
        await asyncio.sleep(0.01)
        await session.change_mode(TravelMode.WALKING)
        stale_result = await pending

        self.assertIsNone(stale_result)
        self.assertEqual([r.mode for r in routes], [TravelMode.WALKING])
        self.assertIs(session.route.mode, TravelMode.WALKING)


class TestRouteRecency(SessionTestCase):

    async def test_superseded_gps_route_discarded(self):
        routing = make_routing_provider()
        first_fix = Coordinate(1.0, 1.0)
        second_fix = Coordinate(2.0, 2.0)

        async def route_by_origin(origin, destination, mode, options):
            if origin == first_fix:
                await asyncio.sleep(0.05)
                return make_directions_response(1000, 1500)
            return make_directions_response(1000, 1000)

        routing.route = AsyncMock(side_effect=route_by_origin)
        device = FakeDeviceLocation()
        session = self._session(routing=routing, device=device)
        await session.set_destination(pune())
        routes = record(session, EVENT_ROUTE_UPDATED)
        notes = record(session, EVENT_NOTIFICATION)
        session.start_gps()

        device.emit_fix(first_fix)
        await settle(0.01)
        device.emit_fix(second_fix)
        await settle(0.1)

        self.assertTrue(routes)
        self.assertEqual({r.origin for r in routes}, {second_fix})
        self.assertEqual(session.route.origin, second_fix)
        self.assertFalse(any("heavy traffic" in n.message for n in notes))

    async def test_failed_refresh_keeps_previous_route(self):
        calls = 0

        async def flaky_route(*args):
            nonlocal calls
            calls += 1
            if calls == 1:
                return make_directions_response()
            raise asyncio.TimeoutError()

        routing = make_routing_provider()
        routing.route = AsyncMock(side_effect=flaky_route)
        session = await self._ready_session(routing=routing)
        first = session.route
        errors = record(session, EVENT_ERROR)

        await session.start_manual()
        await settle(0.08)

        self.assertIsNotNone(first)
        self.assertIs(session.route, first)
        self.assertGreaterEqual(len(errors), 2)
        for err in errors:
            self.assertIsInstance(err, RouteError)
            self.assertEqual(err.kind, RouteErrorKind.PROVIDER_ERROR)
        self.assertIs(session.state, NavigationState.NAVIGATING_MANUAL)

    async def test_no_path_reported(self):
        session = self._session(routing=make_routing_provider(make_directions_response(status="ZERO_RESULTS")))
        errors = record(session, EVENT_ERROR)
        await session.set_destination(pune())

        await session.query_location("Mumbai")

        self.assertIsNone(session.route)
        self.assertEqual(errors[0].kind, RouteErrorKind.NO_PATH)


class TestDestination(SessionTestCase):

    async def test_destination_change_mid_navigation_recomputes(self):
        session = await self._ready_session()
        await session.start_manual()
        tokyo = make_location(35.6762, 139.6503, "Tokyo, Japan")

        route = await session.set_destination(tokyo)

        self.assertIs(session.state, NavigationState.NAVIGATING_MANUAL)
        self.assertIs(session.destination, tokyo)
        self.assertIs(session.route, route)

    async def test_load_trip_with_stored_coordinates(self):
        primary = make_primary()
        session = self._session(primary=primary)
        trip = {"destination": "Shaniwar Wada", "travelDetails": {"destCoordinates": {"lat": 18.5195, "lng": 73.8553}}}

        destination = await session.load_trip_destination(trip)

        self.assertEqual(destination.coordinate, Coordinate(18.5195, 73.8553))
        self.assertEqual(destination.label, "Shaniwar Wada")
        self.assertIs(destination.source, LocationSource.STORED)
        primary.geocode.assert_not_awaited()

    async def test_load_trip_geocodes_name(self):
        session = self._session()

        destination = await session.load_trip_destination({"destination": "Pune"})

        self.assertEqual(destination.coordinate, PUNE)
        self.assertEqual(destination.label, "Pune")
        self.assertIs(session.destination, destination)

    async def test_load_trip_with_invalid_coordinates_geocodes(self):
        session = self._session()
        trip = {"destination": "Pune", "travelDetails": {"destCoordinates": {"lat": "north"}}}

        destination = await session.load_trip_destination(trip)

        self.assertEqual(destination.coordinate, PUNE)

    async def test_load_trip_without_name_fails(self):
        session = self._session()
        errors = record(session, EVENT_ERROR)

        self.assertIsNone(await session.load_trip_destination({}))
        self.assertIsNone(session.destination)
        self.assertIsInstance(errors[0], GeocodeError)


class TestTrafficUpdates(SessionTestCase):

    async def test_high_severity_refreshes_route_before_navigation(self):
        routing = make_routing_provider()
        session = await self._ready_session(routing=routing)
        self.assertIs(session.state, NavigationState.LOCATION_SET)
        calls = routing.route.await_count
        notes = record(session, EVENT_NOTIFICATION)

        await session.handle_traffic_update("high", "Accident on NH48")

        self.assertEqual(routing.route.await_count, calls + 1)
        self.assertEqual(notes[0].level, NotificationLevel.WARNING)

    async def test_high_severity_without_destination_only_notifies(self):
        routing = make_routing_provider()
        session = self._session(routing=routing)
        await session.query_location("Mumbai")
        notes = record(session, EVENT_NOTIFICATION)

        await session.handle_traffic_update("high", "Accident on NH48")

        routing.route.assert_not_awaited()
        self.assertEqual(notes[0].level, NotificationLevel.WARNING)

    async def test_low_severity_only_notifies(self):
        routing = make_routing_provider()
        session = await self._ready_session(routing=routing)
        calls = routing.route.await_count
        notes = record(session, EVENT_NOTIFICATION)

        await session.handle_traffic_update("low", "Slow traffic near Lonavala")

        self.assertEqual(routing.route.await_count, calls)
        self.assertEqual(notes[0].level, NotificationLevel.INFO)


class TestShutdown(unittest.IsolatedAsyncioTestCase):

    async def test_shutdown_releases_everything(self):
        routing = make_routing_provider()

        async def slow_route(*args):
            await asyncio.sleep(1)
            return make_directions_response()

        device = FakeDeviceLocation()
        session = make_session(routing=routing, device=device)
        await session.set_destination(pune())
        session.start_gps()
        routing.route = AsyncMock(side_effect=slow_route)
        device.emit_fix(MUMBAI)
        await settle(0.01)

        await session.async_shutdown()
        await settle(0.01)

        self.assertEqual(device.watches, {})
        self.assertFalse(session.monitor.running)
        self.assertFalse(session.monitor.refresh_pending)
        others = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        self.assertEqual(others, [])

    async def test_session_unusable_after_shutdown(self):
        session = make_session()
        await session.async_shutdown()
        await session.async_shutdown()

        with self.assertRaises(NavigationStateError):
            await session.query_location("Mumbai")
        with self.assertRaises(NavigationStateError):
            session.start_gps()
