"""Read-side rollups: per-endpoint detail, per-service summary, snapshot.

Everything here is a pure function of the history store and ``now_ms``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mcpdd.catalog.models import Endpoint, Service
from mcpdd.history.store import HistoryStore
from mcpdd.probe.models import AuthStatus, CheckResult, HealthStatus, hinted_auth

HOUR_MS = 60 * 60 * 1000
HISTORY_HOURS = 24
MAX_ICONS = 3

# Lower is worse. unknown sorts last: it is the least informative, not the best.
STATUS_PRIORITY: dict[HealthStatus, int] = {
    HealthStatus.DOWN: 0,
    HealthStatus.UNHEALTHY: 1,
    HealthStatus.DEGRADED: 2,
    HealthStatus.HEALTHY: 3,
    HealthStatus.UNKNOWN: 4,
}

STATUS_COLORS: dict[HealthStatus, str] = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "orange",
    HealthStatus.DOWN: "red",
    HealthStatus.UNKNOWN: "gray",
}

COLOR_PRIORITY: dict[str, int] = {"red": 0, "orange": 1, "yellow": 2, "gray": 3, "green": 4}


def worst_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Most severe status; ``unknown`` for an empty input."""
    return min(statuses, key=STATUS_PRIORITY.__getitem__, default=HealthStatus.UNKNOWN)


def health_icons(statuses: Sequence[HealthStatus]) -> list[str]:
    """Summarize endpoint statuses as up to three colors, worst first.

    One icon per distinct color; when there are fewer distinct colors than
    slots, the remaining slots repeat the worst color.
    """
    slots = min(MAX_ICONS, len(statuses))
    if slots == 0:
        return []
    colors = sorted({STATUS_COLORS[s] for s in statuses}, key=COLOR_PRIORITY.__getitem__)
    icons = colors[:slots]
    icons.extend([colors[0]] * (slots - len(icons)))
    return sorted(icons, key=COLOR_PRIORITY.__getitem__)


def uptime_percent(results: Sequence[CheckResult]) -> float | None:
    """Share of checks that were not ``down``, as a percentage with 2 decimals."""
    if not results:
        return None
    up = sum(1 for r in results if r.health != HealthStatus.DOWN)
    return round(100 * up / len(results), 2)


def downsample_hours(
    results: Sequence[CheckResult], now_ms: int, hours: int = HISTORY_HOURS
) -> list[HealthStatus]:
    """Worst status per hour for the last *hours* hours, oldest bucket first.

    Bucket ``i`` hours back covers ``[now - (i+1)h, now - i*h)``; an empty
    bucket is ``unknown``.
    """
    buckets: list[list[HealthStatus]] = [[] for _ in range(hours)]
    for result in results:
        age = now_ms - result.timestamp
        if age <= 0:
            continue
        hours_back = (age - 1) // HOUR_MS
        if hours_back < hours:
            buckets[hours - 1 - hours_back].append(result.health)
    return [worst_status(bucket) for bucket in buckets]


@dataclass
class EndpointDetail:
    """Current state and recent history of one endpoint."""

    label: str
    url: str
    transport: str
    health: HealthStatus
    auth: AuthStatus
    latency_ms: int | None
    tool_count: int | None
    error: str | None
    last_checked: int | None
    uptime_percent: float | None
    history: list[HealthStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "url": self.url,
            "transport": self.transport,
            "health": self.health.value,
            "auth": self.auth.value,
            "latency_ms": self.latency_ms,
            "tool_count": self.tool_count,
            "error": self.error,
            "last_checked": self.last_checked,
            "uptime_percent": self.uptime_percent,
            "history": [{"health": h.value} for h in self.history],
        }


@dataclass
class ServiceSummary:
    """Rollup of a service across its endpoints."""

    identifier: str
    version: str
    display_name: str
    sse_only: bool
    health: HealthStatus
    health_icons: list[str]
    endpoint_count: int
    worst_latency_ms: int | None
    uptime_percent: float | None
    history: list[HealthStatus]
    endpoints: list[EndpointDetail]

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "version": self.version,
            "display_name": self.display_name,
            "sse_only": self.sse_only,
            "health": self.health.value,
            "health_icons": self.health_icons,
            "endpoint_count": self.endpoint_count,
            "worst_latency_ms": self.worst_latency_ms,
            "uptime_percent": self.uptime_percent,
            "history": [{"health": h.value} for h in self.history],
            "endpoints": [e.to_dict() for e in self.endpoints],
        }


def build_endpoint_detail(
    service: Service, endpoint: Endpoint, store: HistoryStore, now_ms: int
) -> EndpointDetail:
    results = store.series(service.identifier, endpoint.url)
    latest = results[-1] if results else None
    return EndpointDetail(
        label=endpoint.label,
        url=endpoint.url,
        transport=endpoint.transport.value,
        health=latest.health if latest else HealthStatus.UNKNOWN,
        auth=latest.auth if latest else hinted_auth(endpoint.expect_auth),
        latency_ms=latest.latency_ms if latest else None,
        tool_count=latest.tool_count if latest else None,
        error=latest.error if latest else None,
        last_checked=latest.timestamp if latest else None,
        uptime_percent=uptime_percent(results),
        history=downsample_hours(results, now_ms),
    )


def build_service_summary(service: Service, store: HistoryStore, now_ms: int) -> ServiceSummary:
    details = [build_endpoint_detail(service, e, store, now_ms) for e in service.endpoints]
    statuses = [d.health for d in details]

    latencies = [d.latency_ms for d in details if d.latency_ms is not None]
    uptimes = [d.uptime_percent for d in details if d.uptime_percent is not None]
    history = [
        worst_status(d.history[hour] for d in details)
        for hour in range(HISTORY_HOURS)
    ]

    return ServiceSummary(
        identifier=service.identifier,
        version=service.version,
        display_name=service.display_name,
        sse_only=service.sse_only,
        health=worst_status(statuses),
        health_icons=health_icons(statuses),
        endpoint_count=len(service.endpoints),
        worst_latency_ms=max(latencies) if latencies else None,
        uptime_percent=round(sum(uptimes) / len(uptimes), 2) if uptimes else None,
        history=history,
        endpoints=details,
    )


def build_snapshot(
    services: Iterable[Service],
    store: HistoryStore,
    now_ms: int,
    last_check: datetime | None = None,
    next_check: datetime | None = None,
) -> dict[str, Any]:
    return {
        "last_check": last_check.isoformat() if last_check else None,
        "next_check": next_check.isoformat() if next_check else None,
        "services": [build_service_summary(s, store, now_ms).to_dict() for s in services],
    }
