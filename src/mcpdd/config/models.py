"""Pydantic models for mcpdd configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class MonitorIdentity(BaseModel):
    """Top-level identity metadata, also sent as MCP clientInfo."""

    name: str = "mcpdd"
    version: str = "0.1.0"


class ProbeConfig(BaseModel):
    """Probe cycle timing and concurrency."""

    interval_seconds: float = Field(default=300.0, gt=0)
    timeout_seconds: float = Field(default=10.0, gt=0)
    close_timeout_seconds: float = Field(default=3.0, gt=0)
    max_concurrent: int = Field(default=15, ge=1)


class HistoryConfig(BaseModel):
    """Retention and persistence of check history."""

    path: str = "data/history.json"
    retention_hours: float = Field(default=24.0, gt=0)
    persist_interval_seconds: float = Field(default=300.0, gt=0)

    @property
    def retention_seconds(self) -> float:
        return self.retention_hours * 3600


class CatalogConfig(BaseModel):
    """Where the ingestion pipeline leaves the server catalog."""

    path: str = "data/servers.json"
    legacy_path: str = "servers.json"
    changelog_path: str = "data/changelog.json"


class AuthConfig(BaseModel):
    """Authentication configuration."""

    api_key: str = ""  # empty = auth disabled


class WebhookConfig(BaseModel):
    """Configuration for a single webhook endpoint."""

    url: str
    events: list[str] = Field(default_factory=lambda: ["endpoint.status_changed"])
    secret: str = ""  # HMAC signing key, supports ${ENV_VAR}


class MonitorConfig(BaseModel):
    """Root configuration model for .mcpdd.yaml."""

    mcpdd: MonitorIdentity = Field(default_factory=MonitorIdentity)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    webhooks: list[WebhookConfig] = Field(default_factory=list)
    event_log_size: int = 100
