"""Shared fixtures for mcpdd tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List

import pytest
import yaml

from mcpdd.catalog.loader import normalize_catalog
from mcpdd.catalog.models import Endpoint, Service
from mcpdd.config.models import MonitorConfig
from mcpdd.history.store import HistoryStore
from mcpdd.probe.models import AuthStatus, CheckResult, HealthStatus

NOW = 1_760_000_000.0  # fixed wall clock for deterministic windows
NOW_MS = int(NOW * 1000)

SAMPLE_CATALOG: List[Dict[str, Any]] = [
    {
        "registryName": "io.github.acme/weather",
        "registryVersion": "1.2.0",
        "displayName": "Acme Weather",
        "sseOnly": False,
        "remotes": [
            {
                "url": "https://weather.acme.dev/mcp",
                "transport": "streamable-http",
                "expectAuth": False,
                "remoteName": "default",
            }
        ],
    },
    {
        "registryName": "com.example/search",
        "registryVersion": "0.3.1",
        "displayName": "Example Search",
        "sseOnly": False,
        "remotes": [
            {"url": "https://eu.search.example.com/mcp", "transport": "streamable-http", "remoteName": "eu"},
            {"url": "https://us.search.example.com/mcp", "transport": "streamable-http", "remoteName": "us"},
            {
                "url": "https://us.search.example.com/sse",
                "transport": "sse",
                "expectAuth": True,
                "remoteName": "us-sse",
            },
        ],
    },
]

SAMPLE_CONFIG: Dict[str, Any] = {
    "mcpdd": {"name": "mcpdd", "version": "0.1.0"},
    "probe": {
        "interval_seconds": 300,
        "timeout_seconds": 10,
        "close_timeout_seconds": 3,
        "max_concurrent": 15,
    },
    "history": {"path": "data/history.json", "retention_hours": 24, "persist_interval_seconds": 300},
    "catalog": {"path": "data/servers.json", "legacy_path": "servers.json"},
}


class FakeClock:
    """Wall and monotonic clock that only moves when told to."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProber:
    """Stands in for Prober: returns scripted health per URL and counts calls."""

    def __init__(
        self,
        outcomes: Dict[str, HealthStatus] | None = None,
        clock: FakeClock | None = None,
        delay: float = 0.0,
    ) -> None:
        self.outcomes = outcomes or {}
        self.clock = clock or FakeClock()
        self.delay = delay
        self.calls: List[str] = []
        self.release = asyncio.Event()
        self.block = False

    async def probe(self, endpoint: Endpoint) -> CheckResult:
        self.calls.append(endpoint.url)
        if self.block:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        health = self.outcomes.get(endpoint.url, HealthStatus.HEALTHY)
        return CheckResult(
            timestamp=int(self.clock() * 1000),
            health=health,
            auth=AuthStatus.OPEN,
            latency_ms=120 if health == HealthStatus.HEALTHY else None,
            tool_count=3 if health == HealthStatus.HEALTHY else None,
        )


def make_result(
    health: HealthStatus = HealthStatus.HEALTHY,
    timestamp: int = NOW_MS,
    latency_ms: int | None = None,
    **kwargs: Any,
) -> CheckResult:
    return CheckResult(
        timestamp=timestamp,
        health=health,
        auth=kwargs.pop("auth", AuthStatus.OPEN),
        latency_ms=latency_ms,
        **kwargs,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def services() -> List[Service]:
    return normalize_catalog(SAMPLE_CATALOG)


@pytest.fixture()
def weather(services: List[Service]) -> Service:
    return services[0]


@pytest.fixture()
def search(services: List[Service]) -> Service:
    return services[1]


@pytest.fixture()
def store(clock: FakeClock, services: List[Service]) -> HistoryStore:
    s = HistoryStore(retention_seconds=24 * 3600, clock=clock)
    for service in services:
        for endpoint in service.endpoints:
            s.initialize(service.identifier, endpoint.url)
    return s


@pytest.fixture()
def sample_config(tmp_path: Path) -> MonitorConfig:
    """Config whose files all live under tmp_path."""
    data = dict(SAMPLE_CONFIG)
    data["history"] = {**SAMPLE_CONFIG["history"], "path": str(tmp_path / "data" / "history.json")}
    data["catalog"] = {
        "path": str(tmp_path / "data" / "servers.json"),
        "legacy_path": str(tmp_path / "servers.json"),
        "changelog_path": str(tmp_path / "data" / "changelog.json"),
    }
    return MonitorConfig(**data)


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """Write sample config to a temp .mcpdd.yaml and return the path."""
    path = tmp_path / ".mcpdd.yaml"
    with path.open("w") as fh:
        yaml.dump(SAMPLE_CONFIG, fh)
    return path
