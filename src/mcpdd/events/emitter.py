"""Event emitter, listener protocol, and monitoring event dataclass."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)

CYCLE_COMPLETED = "cycle.completed"
CYCLE_SKIPPED = "cycle.skipped"
STATUS_CHANGED = "endpoint.status_changed"

EVENT_TYPES = frozenset({CYCLE_COMPLETED, CYCLE_SKIPPED, STATUS_CHANGED})


@dataclass
class MonitorEvent:
    """A typed event emitted by the probe scheduler."""

    event_type: str
    timestamp: datetime
    service: str | None = None  # None for cycle-level events
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "service": self.service,
            "data": self.data,
        }


class EventListener(Protocol):
    """Protocol for consuming monitoring events."""

    async def on_event(self, event: MonitorEvent) -> None: ...


class EventEmitter:
    """Dispatches events to listeners; a failing listener never stops the others."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    async def emit(self, event: MonitorEvent) -> None:
        for listener in self._listeners:
            try:
                await listener.on_event(event)
            except Exception:
                logger.exception("Event listener error")
