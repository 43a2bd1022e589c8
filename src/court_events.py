"""
StakeCourt - Event Emission

Court components record every state change as an event dictionary in their
``events`` audit trail. External observers may also subscribe to receive each
event as it is emitted.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

EventListener = Callable[[dict[str, Any]], None]


class EventEmitter:
    """Mixin providing an event audit trail with subscribable listeners."""

    def __init__(self):
        self.events: list[dict[str, Any]] = []
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        """Register a callable invoked with every emitted event."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        """Return emitted events, optionally filtered by type."""
        if event_type is None:
            return list(self.events)
        return [e for e in self.events if e["event_type"] == event_type]

    def _emit_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Emit an event for audit trail."""
        event = {
            "event_type": event_type,
            "timestamp": datetime.utcnow().isoformat(),
            "data": data
        }
        self.events.append(event)
        for listener in self._listeners:
            listener(event)
