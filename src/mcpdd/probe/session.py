"""Minimal MCP client sessions over httpx.

Only what a probe needs: the ``initialize`` handshake, ``ping`` and
``tools/list``. Two transports are supported:

* streamable HTTP: every JSON-RPC message is POSTed to the server URL; the
  reply is either a JSON body or an event stream carrying the reply.
* legacy HTTP+SSE: a long-lived GET event stream announces a message
  endpoint; requests are POSTed there and replies arrive on the stream.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator
from urllib.parse import urljoin

import httpx
from httpx_sse import EventSource, ServerSentEvent

from mcpdd import __version__
from mcpdd.catalog.models import Endpoint, TransportKind

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"

_ACCEPT_BOTH = "application/json, text/event-stream"


class McpError(Exception):
    """Base class for MCP session failures."""


class McpHttpError(McpError):
    """The server answered with a non-2xx HTTP status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")


class McpProtocolError(McpError):
    """The server answered, but not with a usable JSON-RPC reply."""


async def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 300:
        return
    body = (await response.aread()).decode("utf-8", errors="replace").strip()
    raise McpHttpError(response.status_code, body[:200] or response.reason_phrase)


def _decode(payload: str | bytes) -> Any:
    try:
        return json.loads(payload)
    except ValueError as exc:
        raise McpProtocolError(f"malformed JSON: {exc}") from exc


def _unwrap(reply: Any, method: str) -> Any:
    if not isinstance(reply, dict):
        raise McpProtocolError(f"{method}: reply is not a JSON-RPC object")
    if "error" in reply:
        error = reply["error"] if isinstance(reply["error"], dict) else {}
        raise McpProtocolError(
            f"{method}: JSON-RPC error {error.get('code')}: {error.get('message', 'unknown error')}"
        )
    if "result" not in reply:
        raise McpProtocolError(f"{method}: reply has no result")
    return reply["result"]


class McpSession(ABC):
    """Client side of one MCP connection."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        client_info: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.client_info = client_info or {"name": "mcpdd", "version": __version__}
        self.protocol_version: str | None = None
        self.server_info: dict[str, Any] = {}
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._next_id = 0

    async def initialize(self) -> dict[str, Any]:
        """Perform the initialize handshake and acknowledge it."""
        result = await self.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": self.client_info,
            },
        )
        if not isinstance(result, dict) or "protocolVersion" not in result:
            raise McpProtocolError("initialize: invalid initialize result")
        self.protocol_version = str(result["protocolVersion"])
        self.server_info = result.get("serverInfo") or {}
        await self.notify("notifications/initialized")
        return result

    async def ping(self) -> None:
        await self.request("ping")

    async def list_tools(self) -> list[Any]:
        """Return the first page of the server's declared tools."""
        result = await self.request("tools/list", {})
        if not isinstance(result, dict):
            raise McpProtocolError("tools/list: result is not an object")
        tools = result.get("tools")
        if tools is None:
            return []
        if not isinstance(tools, list):
            raise McpProtocolError("tools/list: tools is not a list")
        return tools

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        self._next_id += 1
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": self._next_id, "method": method}
        if params is not None:
            message["params"] = params
        reply = await self._send_request(message)
        return _unwrap(reply, method)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._send_notification(message)

    @abstractmethod
    async def _send_request(self, message: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def _send_notification(self, message: dict[str, Any]) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...


class StreamableHttpSession(McpSession):
    """Session over the streamable HTTP transport."""

    def __init__(self, url: str, **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self.session_id: str | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": _ACCEPT_BOTH, "Content-Type": "application/json"}
        if self.session_id:
            headers["mcp-session-id"] = self.session_id
        if self.protocol_version:
            headers["mcp-protocol-version"] = self.protocol_version
        return headers

    async def _send_request(self, message: dict[str, Any]) -> Any:
        async with self._client.stream("POST", self.url, json=message, headers=self._headers()) as response:
            await _raise_for_status(response)
            session_id = response.headers.get("mcp-session-id")
            if session_id:
                self.session_id = session_id
            content_type = response.headers.get("content-type", "")
            if content_type.startswith("text/event-stream"):
                async for sse in EventSource(response).aiter_sse():
                    if sse.event != "message" or not sse.data:
                        continue
                    reply = _decode(sse.data)
                    if isinstance(reply, dict) and reply.get("id") == message["id"]:
                        return reply
                raise McpProtocolError(f"{message['method']}: event stream ended without a reply")
            return _decode(await response.aread())

    async def _send_notification(self, message: dict[str, Any]) -> None:
        response = await self._client.post(self.url, json=message, headers=self._headers())
        await _raise_for_status(response)

    async def close(self) -> None:
        try:
            if self.session_id:
                try:
                    await self._client.delete(self.url, headers=self._headers())
                except httpx.HTTPError as exc:
                    logger.debug("Session DELETE to %s failed: %s", self.url, exc)
        finally:
            await self._client.aclose()


class SseSession(McpSession):
    """Session over the legacy HTTP+SSE transport."""

    def __init__(self, url: str, **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self.endpoint_url: str | None = None
        self._response: httpx.Response | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._stream_error: BaseException | None = None

    async def initialize(self) -> dict[str, Any]:
        await self._connect()
        return await super().initialize()

    async def _connect(self) -> None:
        request = self._client.build_request("GET", self.url, headers={"Accept": "text/event-stream"})
        self._response = await self._client.send(request, stream=True)
        await _raise_for_status(self._response)
        content_type = self._response.headers.get("content-type", "")
        if not content_type.startswith("text/event-stream"):
            raise McpProtocolError(f"expected an event stream, got {content_type or 'no content type'}")
        events = EventSource(self._response).aiter_sse()
        async for sse in events:
            if sse.event == "endpoint":
                self.endpoint_url = urljoin(self.url, sse.data.strip())
                break
        else:
            raise McpProtocolError("event stream closed before announcing an endpoint")
        self._reader = asyncio.create_task(self._read_messages(events), name=f"mcp-sse-{self.url}")

    async def _read_messages(self, events: AsyncIterator[ServerSentEvent]) -> None:
        error: BaseException
        try:
            async for sse in events:
                if sse.event != "message" or not sse.data:
                    continue
                reply = _decode(sse.data)
                if not isinstance(reply, dict):
                    continue
                future = self._pending.get(reply.get("id"))  # type: ignore[arg-type]
                if future is not None and not future.done():
                    future.set_result(reply)
            error = McpProtocolError("event stream closed")
        except Exception as exc:
            error = exc
        self._stream_error = error
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

    async def _send_request(self, message: dict[str, Any]) -> Any:
        if self.endpoint_url is None:
            raise McpProtocolError("not connected")
        if self._stream_error is not None:
            raise self._stream_error
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[message["id"]] = future
        try:
            await self._post(message)
            return await future
        finally:
            self._pending.pop(message["id"], None)

    async def _send_notification(self, message: dict[str, Any]) -> None:
        if self.endpoint_url is None:
            raise McpProtocolError("not connected")
        await self._post(message)

    async def _post(self, message: dict[str, Any]) -> None:
        assert self.endpoint_url is not None
        response = await self._client.post(self.endpoint_url, json=message)
        await _raise_for_status(response)

    async def close(self) -> None:
        try:
            if self._reader is not None:
                self._reader.cancel()
                await asyncio.wait({self._reader})
            if self._response is not None:
                await self._response.aclose()
        finally:
            await self._client.aclose()


def open_session(
    endpoint: Endpoint,
    *,
    timeout: float = 10.0,
    client_info: dict[str, str] | None = None,
) -> McpSession:
    """Create an unconnected session for *endpoint* using its transport."""
    session_cls: type[McpSession]
    if endpoint.transport == TransportKind.SSE:
        session_cls = SseSession
    else:
        session_cls = StreamableHttpSession
    return session_cls(endpoint.url, timeout=timeout, client_info=client_info)
