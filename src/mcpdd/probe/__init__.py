"""Endpoint probing: MCP sessions, classification and check results."""

from mcpdd.probe.models import AuthStatus, CheckResult, HealthStatus, hinted_auth
from mcpdd.probe.prober import Prober, classify_handshake_error, classify_latency
from mcpdd.probe.session import (
    McpError,
    McpHttpError,
    McpProtocolError,
    McpSession,
    SseSession,
    StreamableHttpSession,
    open_session,
)

__all__ = [
    "AuthStatus",
    "CheckResult",
    "HealthStatus",
    "McpError",
    "McpHttpError",
    "McpProtocolError",
    "McpSession",
    "Prober",
    "SseSession",
    "StreamableHttpSession",
    "classify_handshake_error",
    "classify_latency",
    "hinted_auth",
    "open_session",
]
