"""In-memory ring buffer for recent monitoring events."""

from __future__ import annotations

from collections import deque

from mcpdd.events.emitter import MonitorEvent


class EventLog:
    """Bounded in-memory event log. Implements EventListener protocol."""

    def __init__(self, max_size: int = 100) -> None:
        self._events: deque[MonitorEvent] = deque(maxlen=max_size)

    async def on_event(self, event: MonitorEvent) -> None:
        self._events.append(event)

    def get_recent(self, limit: int = 20, event_type: str | None = None) -> list[MonitorEvent]:
        """Most recent first, optionally filtered by type."""
        if event_type:
            events = [e for e in self._events if e.event_type == event_type]
        else:
            events = list(self._events)
        events.reverse()
        return events[:limit]
