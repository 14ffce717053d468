"""
Events emitted by a navigation session and the listener registry behind them.

Listeners are plain callables. A failing listener is logged and skipped;
it never breaks the session that emitted the event.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Callable

_LOGGER = logging.getLogger(__name__)

EVENT_LOCATION_CHANGED = "location_changed"
EVENT_ROUTE_UPDATED = "route_updated"
EVENT_NAVIGATION_STATE_CHANGED = "navigation_state_changed"
EVENT_ERROR = "error"
EVENT_NOTIFICATION = "notification"

EVENTS = frozenset({
    EVENT_LOCATION_CHANGED,
    EVENT_ROUTE_UPDATED,
    EVENT_NAVIGATION_STATE_CHANGED,
    EVENT_ERROR,
    EVENT_NOTIFICATION,
})


class NotificationLevel(enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclasses.dataclass(frozen=True)
class Notification:
    """Human readable status line for the toast sink."""
    level: NotificationLevel
    message: str


class EventDispatcher:
    """Registry of listeners per event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[Any], None]]] = {name: [] for name in EVENTS}

    def add_listener(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register ``callback`` for ``event``; returns a function that removes it."""
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

        def remove_listener() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return remove_listener

    def emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Listener for %s failed: %s", event, exc)

    def clear(self) -> None:
        for listeners in self._listeners.values():
            listeners.clear()
