"""Probe a single MCP endpoint and classify the outcome."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

from mcpdd.catalog.models import Endpoint
from mcpdd.probe.models import AuthStatus, CheckResult, HealthStatus, hinted_auth
from mcpdd.probe.session import McpHttpError, McpSession, open_session

logger = logging.getLogger(__name__)

HEALTHY_LATENCY_MS = 500

SessionFactory = Callable[[Endpoint, float], McpSession]


def _default_session_factory(endpoint: Endpoint, timeout: float) -> McpSession:
    return open_session(endpoint, timeout=timeout)


def classify_handshake_error(exc: Exception, endpoint: Endpoint, timestamp: int) -> CheckResult:
    """Map a failure of the initialize handshake to a check result."""
    if isinstance(exc, McpHttpError):
        code = exc.status_code
        if code in (401, 403):
            return CheckResult(timestamp=timestamp, health=HealthStatus.HEALTHY, auth=AuthStatus.PROTECTED)
        if 500 <= code < 600:
            return CheckResult(
                timestamp=timestamp,
                health=HealthStatus.DOWN,
                auth=hinted_auth(endpoint.expect_auth),
                error=str(exc),
            )
    elif isinstance(exc, httpx.TransportError):
        # refused, DNS, reset and transport-level timeouts
        return CheckResult(
            timestamp=timestamp,
            health=HealthStatus.DOWN,
            auth=hinted_auth(endpoint.expect_auth),
            error=str(exc) or type(exc).__name__,
        )
    # Redirects, other 4xx, malformed replies: the server answered but MCP is broken.
    return CheckResult(
        timestamp=timestamp,
        health=HealthStatus.UNHEALTHY,
        auth=AuthStatus.PROTECTED if endpoint.expect_auth else AuthStatus.OPEN,
        error=str(exc) or type(exc).__name__,
    )


def classify_latency(latency_ms: int) -> HealthStatus:
    # Anything slower than the healthy threshold is degraded, however slow.
    if latency_ms <= HEALTHY_LATENCY_MS:
        return HealthStatus.HEALTHY
    return HealthStatus.DEGRADED


class Prober:
    """Runs the three-stage MCP probe: handshake, ping, tools/list.

    ``probe`` never raises: every failure ends in a :class:`CheckResult`.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        close_timeout: float = 3.0,
        session_factory: SessionFactory | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout
        self._close_timeout = close_timeout
        self._session_factory = session_factory or _default_session_factory
        self._clock = clock
        self._monotonic = monotonic

    async def probe(self, endpoint: Endpoint) -> CheckResult:
        timestamp = int(self._clock() * 1000)
        session: McpSession | None = None
        try:
            session = self._session_factory(endpoint, self._timeout)
            return await self._race(session, endpoint, timestamp)
        except Exception as exc:
            logger.exception("Unexpected probe failure for %s", endpoint.url)
            return CheckResult(
                timestamp=timestamp,
                health=HealthStatus.DOWN,
                auth=hinted_auth(endpoint.expect_auth),
                error=str(exc) or type(exc).__name__,
            )
        finally:
            if session is not None:
                await self._close(session)

    async def _race(self, session: McpSession, endpoint: Endpoint, timestamp: int) -> CheckResult:
        """First of {staged probe, timeout} wins; the loser is cancelled."""
        task = asyncio.create_task(self._run_stages(session, endpoint, timestamp), name=f"probe-{endpoint.url}")
        try:
            done, _ = await asyncio.wait({task}, timeout=self._timeout)
        finally:
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        await asyncio.wait({task}, timeout=self._close_timeout)
        return CheckResult(
            timestamp=timestamp,
            health=HealthStatus.DOWN,
            auth=hinted_auth(endpoint.expect_auth),
            error=f"Probe timed out after {self._timeout:g}s",
        )

    async def _run_stages(self, session: McpSession, endpoint: Endpoint, timestamp: int) -> CheckResult:
        try:
            await session.initialize()
        except Exception as exc:
            return classify_handshake_error(exc, endpoint, timestamp)

        ping_start = self._monotonic()
        try:
            await session.ping()
        except Exception as exc:
            return CheckResult(
                timestamp=timestamp,
                health=HealthStatus.DEGRADED,
                auth=AuthStatus.OPEN,
                error=f"ping failed: {exc}",
            )
        latency_ms = round((self._monotonic() - ping_start) * 1000)

        try:
            tools = await session.list_tools()
        except Exception as exc:
            return CheckResult(
                timestamp=timestamp,
                health=HealthStatus.UNHEALTHY,
                auth=AuthStatus.OPEN,
                latency_ms=latency_ms,
                error=f"tools/list failed: {exc}",
            )

        return CheckResult(
            timestamp=timestamp,
            health=classify_latency(latency_ms),
            auth=AuthStatus.OPEN,
            latency_ms=latency_ms,
            tool_count=len(tools),
        )

    async def _close(self, session: McpSession) -> None:
        try:
            await asyncio.wait_for(session.close(), timeout=self._close_timeout)
        except TimeoutError:
            logger.debug("Closing session for %s timed out", session.url)
        except Exception as exc:
            logger.debug("Closing session for %s failed: %s", session.url, exc)
