"""Monitoring event system."""

from __future__ import annotations

from mcpdd.events.emitter import (
    CYCLE_COMPLETED,
    CYCLE_SKIPPED,
    EVENT_TYPES,
    STATUS_CHANGED,
    EventEmitter,
    EventListener,
    MonitorEvent,
)
from mcpdd.events.log import EventLog
from mcpdd.events.webhook import WebhookListener

__all__ = [
    "CYCLE_COMPLETED",
    "CYCLE_SKIPPED",
    "EVENT_TYPES",
    "STATUS_CHANGED",
    "EventEmitter",
    "EventListener",
    "EventLog",
    "MonitorEvent",
    "WebhookListener",
]
