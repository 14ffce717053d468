"""
TrafficMonitor: periodic route refresh while driving.

This is a pure asyncio scheduling primitive with no network dependencies:
every ``interval`` seconds it launches the refresh coroutine supplied by the
owner. A tick that comes due while the previous refresh is still pending is
skipped, so slow providers never build up a backlog of requests.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .const import TRAFFIC_MONITOR_INTERVAL

_LOGGER = logging.getLogger(__name__)


class TrafficMonitor:
    """
    Cancellable periodic task with overlap protection.

    ``start()`` on a running monitor and ``stop()`` on a stopped one are
    no-ops. ``stop()`` cancels the timer and any pending refresh before it
    returns.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[None]],
        interval: float = TRAFFIC_MONITOR_INTERVAL,
    ) -> None:
        self._refresh = refresh
        self.interval = interval
        self._timer: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        # cancelled tasks not yet awaited by close()
        self._cancelled: list[asyncio.Task] = []
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def refresh_pending(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> None:
        if self.running:
            return
        self._timer = asyncio.ensure_future(self._run())
        _LOGGER.debug("Traffic monitoring started (every %ss)", self.interval)

    def stop(self) -> None:
        if self._timer is None and self._inflight is None:
            return
        self._cancelled = [t for t in self._cancelled if not t.done()]
        for task in (self._timer, self._inflight):
            if task is not None:
                task.cancel()
                self._cancelled.append(task)
        self._timer = None
        self._inflight = None
        _LOGGER.debug("Traffic monitoring stopped")

    async def close(self) -> None:
        """Stop and wait until the cancelled tasks have unwound."""
        self.stop()
        tasks, self._cancelled = self._cancelled, []
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._tick()

    def _tick(self) -> None:
        if self.refresh_pending:
            self.skipped += 1
            _LOGGER.debug("Previous traffic refresh still pending, skipping tick")
            return
        self.ticks += 1
        self._inflight = asyncio.ensure_future(self._run_refresh())

    async def _run_refresh(self) -> None:
        try:
            await self._refresh()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Traffic refresh failed: %s", exc)
