"""Check result and status types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DOWN = "down"
    UNKNOWN = "unknown"


class AuthStatus(StrEnum):
    OPEN = "open"
    PROTECTED = "protected"
    UNKNOWN = "unknown"


def hinted_auth(expect_auth: bool) -> AuthStatus:
    """Auth status to report when no authoritative signal was observed."""
    return AuthStatus.PROTECTED if expect_auth else AuthStatus.UNKNOWN


@dataclass(frozen=True)
class CheckResult:
    """One observation of one endpoint.

    ``timestamp`` is epoch milliseconds taken when the probe started.
    """

    timestamp: int
    health: HealthStatus
    auth: AuthStatus
    latency_ms: int | None = None
    tool_count: int | None = None
    error: str | None = None
    short_circuited: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "health": self.health.value,
            "auth": self.auth.value,
            "latency_ms": self.latency_ms,
            "tool_count": self.tool_count,
            "error": self.error,
            "short_circuited": self.short_circuited,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckResult:
        return cls(
            timestamp=int(data["timestamp"]),
            health=HealthStatus(data["health"]),
            auth=AuthStatus(data.get("auth") or AuthStatus.UNKNOWN),
            latency_ms=data.get("latency_ms"),
            tool_count=data.get("tool_count"),
            error=data.get("error"),
            short_circuited=bool(data.get("short_circuited", False)),
        )
