"""
PositionSource: where the user is right now.

Two variants, never active together:
    ManualPositionSource   one-shot: geocode typed text, or a single device fix
    GpsPositionSource      continuous device watch, every fix reverse geocoded

GPS fixes are published as soon as the watch reports them, labelled with the
formatted coordinate, so they keep watch order and never wait on the network.
The address label follows as a second publication of the same fix, and only
while that fix is still the latest one.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable

from .const import (
    MANUAL_FIX_MAXIMUM_AGE,
    MANUAL_FIX_TIMEOUT,
    WATCH_FIX_MAXIMUM_AGE,
    WATCH_FIX_TIMEOUT,
)
from .device_location import DeviceLocationApi, PositionFix, PositionOptions
from .errors import PositionError, PositionErrorKind
from .geocoder import Geocoder
from .models import Location, LocationSource

_LOGGER = logging.getLogger(__name__)

MANUAL_FIX_OPTIONS = PositionOptions(
    enable_high_accuracy=True, timeout=MANUAL_FIX_TIMEOUT, maximum_age=MANUAL_FIX_MAXIMUM_AGE
)
WATCH_OPTIONS = PositionOptions(
    enable_high_accuracy=True, timeout=WATCH_FIX_TIMEOUT, maximum_age=WATCH_FIX_MAXIMUM_AGE
)


class ManualPositionSource:
    """Discrete position queries: typed place names or a single device fix."""

    def __init__(
        self,
        geocoder: Geocoder,
        device: DeviceLocationApi | None = None,
        options: PositionOptions = MANUAL_FIX_OPTIONS,
    ) -> None:
        self.geocoder = geocoder
        self.device = device
        self.options = options

    async def query(self, text: str) -> Location:
        """Geocode ``text``; GeocodeError propagates to the caller."""
        return await self.geocoder.resolve(text)

    async def locate_once(self) -> Location:
        """
        Take one device fix and label it.

        Raises PositionError (UNAVAILABLE when no device is configured).
        """
        if self.device is None:
            raise PositionError(PositionErrorKind.UNAVAILABLE, "GPS is not supported on this device")
        fix = await self.device.get_current_position(self.options)
        label = await self.geocoder.reverse(fix.coordinate)
        return Location(fix.coordinate, label, LocationSource.GPS)


class GpsPositionSource:
    """
    Continuous position watch.

    The watch id and the labelling task are owned by this instance;
    ``stop()`` releases both and may be called any number of times.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        device: DeviceLocationApi,
        options: PositionOptions = WATCH_OPTIONS,
    ) -> None:
        self.geocoder = geocoder
        self.device = device
        self.options = options
        self._watch_id: int | None = None
        self._on_update: Callable[[Location], None] | None = None
        # Reverse geocoding of the latest fix; at most one in flight
        self._labeller: asyncio.Task | None = None
        self._latest: Location | None = None

    @property
    def active(self) -> bool:
        return self._watch_id is not None

    def start(
        self,
        on_update: Callable[[Location], None],
        on_error: Callable[[PositionError], None],
    ) -> int:
        """
        Open the device watch and return its handle.

        Starting an already running source returns the existing handle.
        """
        if self._watch_id is not None:
            return self._watch_id

        self._on_update = on_update
        self._watch_id = self.device.watch_position(self._on_fix, on_error, self.options)
        _LOGGER.debug("GPS tracking started (watch %s)", self._watch_id)
        return self._watch_id

    def stop(self, handle: int | None = None) -> None:
        """Release the watch and drop any pending label. Idempotent."""
        if handle is not None and handle != self._watch_id:
            return
        if self._watch_id is not None:
            self.device.clear_watch(self._watch_id)
            _LOGGER.debug("GPS tracking stopped (watch %s)", self._watch_id)
        self._watch_id = None
        self._on_update = None
        self._latest = None
        self._cancel_labeller()

    def _on_fix(self, fix: PositionFix) -> None:
        if self._on_update is None:
            return
        location = Location(fix.coordinate, fix.coordinate.format(), LocationSource.GPS)
        self._latest = location
        # A newer fix makes the pending label useless
        self._cancel_labeller()
        self._publish(location)
        self._labeller = asyncio.ensure_future(self._label(location))

    async def _label(self, location: Location) -> None:
        label = await self.geocoder.reverse(location.coordinate)
        if location is not self._latest or label == location.label:
            return
        self._publish(dataclasses.replace(location, label=label))

    def _publish(self, location: Location) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(location)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("GPS update handler failed: %s", exc)

    def _cancel_labeller(self) -> None:
        if self._labeller is not None and not self._labeller.done():
            self._labeller.cancel()
        self._labeller = None
