"""
Device location contract and a polling implementation of it.

The engine only talks to the device through DeviceLocationApi:
    get_current_position(options)                     one-shot fix
    watch_position(on_success, on_error, options)     continuous watch -> watch id
    clear_watch(watch_id)                             release a watch

PollingDeviceLocation adapts any async fix reader (a GPS receiver, a tracker
HTTP API, ...) to that contract. Each watch is one asyncio task; clearing a
watch cancels its task synchronously.
"""
from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
import time
from typing import Awaitable, Callable, Protocol

from .const import WATCH_FIX_MAXIMUM_AGE, WATCH_FIX_TIMEOUT, WATCH_POLL_INTERVAL
from .errors import PositionError, PositionErrorKind
from .models import Coordinate

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout: float = WATCH_FIX_TIMEOUT        # seconds before a fix attempt fails with TIMEOUT
    maximum_age: float = WATCH_FIX_MAXIMUM_AGE  # seconds a cached fix stays acceptable


@dataclasses.dataclass(frozen=True)
class PositionFix:
    coordinate: Coordinate
    taken_at: float  # time.monotonic() of the fix


class DeviceLocationApi(Protocol):
    async def get_current_position(self, options: PositionOptions) -> PositionFix: ...

    def watch_position(
        self,
        on_success: Callable[[PositionFix], None],
        on_error: Callable[[PositionError], None],
        options: PositionOptions,
    ) -> int: ...

    def clear_watch(self, watch_id: int) -> None: ...


class PollingDeviceLocation:
    """
    Device location backed by an async fix reader.

    Args:
        read_fix: coroutine factory returning the current Coordinate.
            PermissionError maps to PERMISSION_DENIED, any other failure
            to UNAVAILABLE; exceeding ``options.timeout`` maps to TIMEOUT.
        poll_interval: seconds between fixes of a watch.
    """

    def __init__(
        self,
        read_fix: Callable[[], Awaitable[Coordinate]],
        poll_interval: float = WATCH_POLL_INTERVAL,
    ) -> None:
        self._read_fix = read_fix
        self._poll_interval = poll_interval
        self._watch_ids = itertools.count(1)
        # watch_id → polling Task
        self._watches: dict[int, asyncio.Task] = {}
        self._last_fix: PositionFix | None = None

    # ------------------------------------------------------------------
    # DeviceLocationApi
    # ------------------------------------------------------------------

    async def get_current_position(self, options: PositionOptions) -> PositionFix:
        """Return a cached fix younger than maximum_age, or take a new one."""
        cached = self._last_fix
        if cached is not None and time.monotonic() - cached.taken_at <= options.maximum_age:
            return cached
        return await self._take_fix(options)

    def watch_position(
        self,
        on_success: Callable[[PositionFix], None],
        on_error: Callable[[PositionError], None],
        options: PositionOptions,
    ) -> int:
        watch_id = next(self._watch_ids)
        task = asyncio.ensure_future(self._watch(watch_id, on_success, on_error, options))
        self._watches[watch_id] = task
        task.add_done_callback(lambda _t, wid=watch_id: self._watches.pop(wid, None))
        _LOGGER.debug("Started location watch %s", watch_id)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        """Cancel a watch; unknown or already cleared ids are ignored."""
        task = self._watches.pop(watch_id, None)
        if task is None:
            return
        task.cancel()
        _LOGGER.debug("Cleared location watch %s", watch_id)

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    async def close(self) -> None:
        """Cancel every watch and wait for the tasks to finish."""
        tasks = list(self._watches.values())
        self._watches.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _take_fix(self, options: PositionOptions) -> PositionFix:
        try:
            coordinate = await asyncio.wait_for(self._read_fix(), timeout=options.timeout)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise PositionError(PositionErrorKind.TIMEOUT) from e
        except PermissionError as e:
            raise PositionError(PositionErrorKind.PERMISSION_DENIED, str(e) or None) from e
        except PositionError:
            raise
        except Exception as e:  # noqa: BLE001
            raise PositionError(PositionErrorKind.UNAVAILABLE, str(e) or None) from e
        fix = PositionFix(coordinate, time.monotonic())
        self._last_fix = fix
        return fix

    async def _watch(self, watch_id, on_success, on_error, options: PositionOptions) -> None:
        """Poll fixes until cancelled; errors are reported, not fatal."""
        while True:
            try:
                fix = await self._take_fix(options)
            except PositionError as e:
                _LOGGER.warning("Location watch %s error: %s", watch_id, e.kind.value)
                on_error(e)
            else:
                on_success(fix)
            await asyncio.sleep(self._poll_interval)
