"""Service and endpoint descriptors for monitored MCP servers."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TransportKind(StrEnum):
    """MCP transport variants reachable over the network."""

    STREAMABLE_HTTP = "streamable-http"
    SSE = "sse"


class Endpoint(BaseModel):
    """One network address implementing MCP for a service."""

    model_config = ConfigDict(frozen=True)

    url: str
    transport: TransportKind = TransportKind.STREAMABLE_HTTP
    expect_auth: bool = False
    label: str = "default"


class Service(BaseModel):
    """A logical MCP provider owning one or more endpoints."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    display_name: str
    version: str = "0.0.0"
    sse_only: bool = False
    endpoints: tuple[Endpoint, ...] = Field(default_factory=tuple)

    @property
    def is_multi_endpoint(self) -> bool:
        return len(self.endpoints) > 1
