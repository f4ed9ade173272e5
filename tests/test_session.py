"""Tests for the MCP client sessions, against httpx.MockTransport servers."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List

import httpx
import pytest

from mcpdd.catalog.models import Endpoint, TransportKind
from mcpdd.probe.session import (
    McpHttpError,
    McpProtocolError,
    SseSession,
    StreamableHttpSession,
    open_session,
)

URL = "https://mcp.example.com/mcp"

INIT_RESULT = {
    "protocolVersion": "2025-03-26",
    "capabilities": {"tools": {}},
    "serverInfo": {"name": "example", "version": "1.0"},
}
TOOLS = [{"name": "search"}, {"name": "fetch"}]


def _reply(message: Dict[str, Any]) -> Dict[str, Any]:
    method = message["method"]
    if method == "initialize":
        result: Any = INIT_RESULT
    elif method == "tools/list":
        result = {"tools": TOOLS}
    else:
        result = {}
    return {"jsonrpc": "2.0", "id": message["id"], "result": result}


class StreamableServer:
    """Records requests and answers JSON-RPC with JSON bodies (or SSE bodies)."""

    def __init__(self, use_sse_body: bool = False) -> None:
        self.use_sse_body = use_sse_body
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "DELETE":
            return httpx.Response(200)
        message = json.loads(request.content)
        if "id" not in message:
            return httpx.Response(202)
        headers = {"mcp-session-id": "sess-1"} if message["method"] == "initialize" else {}
        if self.use_sse_body:
            body = f"event: message\ndata: {json.dumps(_reply(message))}\n\n"
            return httpx.Response(
                200,
                headers={**headers, "content-type": "text/event-stream"},
                content=body.encode(),
            )
        return httpx.Response(200, headers=headers, json=_reply(message))


def _session(handler: Any) -> StreamableHttpSession:
    return StreamableHttpSession(URL, transport=httpx.MockTransport(handler))


# ─── Streamable HTTP ───


class TestStreamableHttpSession:
    @pytest.mark.asyncio
    async def test_full_exchange(self):
        server = StreamableServer()
        session = _session(server)
        result = await session.initialize()
        await session.ping()
        tools = await session.list_tools()
        await session.close()

        assert result["protocolVersion"] == "2025-03-26"
        assert session.server_info == {"name": "example", "version": "1.0"}
        assert tools == TOOLS
        methods = [
            json.loads(r.content).get("method") if r.method == "POST" else r.method
            for r in server.requests
        ]
        assert methods == ["initialize", "notifications/initialized", "ping", "tools/list", "DELETE"]

    @pytest.mark.asyncio
    async def test_session_id_and_version_headers(self):
        server = StreamableServer()
        session = _session(server)
        await session.initialize()
        await session.ping()
        await session.close()

        init_request, _, ping_request = server.requests[:3]
        assert "mcp-session-id" not in init_request.headers
        assert ping_request.headers["mcp-session-id"] == "sess-1"
        assert ping_request.headers["mcp-protocol-version"] == "2025-03-26"
        assert "text/event-stream" in init_request.headers["accept"]

    @pytest.mark.asyncio
    async def test_sse_response_body(self):
        session = _session(StreamableServer(use_sse_body=True))
        await session.initialize()
        tools = await session.list_tools()
        await session.close()
        assert len(tools) == 2

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        session = _session(lambda request: httpx.Response(401, text="Unauthorized"))
        with pytest.raises(McpHttpError) as info:
            await session.initialize()
        await session.close()
        assert info.value.status_code == 401
        assert "Unauthorized" in str(info.value)

    @pytest.mark.asyncio
    async def test_redirect_is_not_followed(self):
        session = _session(lambda request: httpx.Response(301, headers={"location": "https://elsewhere"}))
        with pytest.raises(McpHttpError) as info:
            await session.initialize()
        await session.close()
        assert info.value.status_code == 301

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        session = _session(lambda request: httpx.Response(200, content=b"<html>hi</html>"))
        with pytest.raises(McpProtocolError, match="malformed JSON"):
            await session.initialize()
        await session.close()

    @pytest.mark.asyncio
    async def test_invalid_initialize_result(self):
        def handler(request: httpx.Request) -> httpx.Response:
            message = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": message["id"], "result": {"hello": 1}})

        session = _session(handler)
        with pytest.raises(McpProtocolError, match="invalid initialize result"):
            await session.initialize()
        await session.close()

    @pytest.mark.asyncio
    async def test_json_rpc_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                return StreamableServer()(request)
            message = json.loads(request.content)
            if message.get("method") == "ping":
                return httpx.Response(
                    200,
                    json={"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32601, "message": "nope"}},
                )
            return StreamableServer()(request)

        session = _session(handler)
        await session.initialize()
        with pytest.raises(McpProtocolError, match="-32601"):
            await session.ping()
        await session.close()

    @pytest.mark.asyncio
    async def test_tools_missing_means_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                return StreamableServer()(request)
            message = json.loads(request.content)
            if message.get("method") == "tools/list":
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": message["id"], "result": {}})
            return StreamableServer()(request)

        session = _session(handler)
        await session.initialize()
        assert await session.list_tools() == []
        await session.close()

    @pytest.mark.asyncio
    async def test_connect_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        session = _session(handler)
        with pytest.raises(httpx.ConnectError):
            await session.initialize()
        await session.close()


# ─── Legacy SSE ───


class SseServer:
    """GET opens an event stream; POSTed requests are answered on it."""

    def __init__(self, endpoint: str = "/messages?session_id=abc") -> None:
        self.endpoint = endpoint
        self.queue: asyncio.Queue[Dict[str, Any] | None] = asyncio.Queue()
        self.posts: List[httpx.Request] = []

    async def _stream(self) -> AsyncIterator[bytes]:
        yield f"event: endpoint\ndata: {self.endpoint}\n\n".encode()
        while True:
            message = await self.queue.get()
            if message is None:
                return
            yield f"event: message\ndata: {json.dumps(message)}\n\n".encode()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=self._stream())
        self.posts.append(request)
        message = json.loads(request.content)
        if "id" in message:
            self.queue.put_nowait(_reply(message))
        return httpx.Response(202)


class TestSseSession:
    @pytest.mark.asyncio
    async def test_full_exchange(self):
        server = SseServer()
        session = SseSession("https://mcp.example.com/sse", transport=httpx.MockTransport(server))
        await session.initialize()
        await session.ping()
        tools = await session.list_tools()
        await session.close()

        assert session.endpoint_url == "https://mcp.example.com/messages?session_id=abc"
        assert len(tools) == 2
        assert [json.loads(r.content)["method"] for r in server.posts] == [
            "initialize",
            "notifications/initialized",
            "ping",
            "tools/list",
        ]

    @pytest.mark.asyncio
    async def test_stream_closed_fails_pending_request(self):
        server = SseServer()
        session = SseSession("https://mcp.example.com/sse", transport=httpx.MockTransport(server))
        await session.initialize()
        server.queue.put_nowait(None)  # server hangs up
        await asyncio.sleep(0)
        with pytest.raises(McpProtocolError, match="event stream closed"):
            await asyncio.wait_for(session.ping(), timeout=1)
        await session.close()

    @pytest.mark.asyncio
    async def test_forbidden(self):
        session = SseSession(
            "https://mcp.example.com/sse",
            transport=httpx.MockTransport(lambda request: httpx.Response(403, text="Forbidden")),
        )
        with pytest.raises(McpHttpError) as info:
            await session.initialize()
        await session.close()
        assert info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_not_an_event_stream(self):
        session = SseSession(
            "https://mcp.example.com/sse",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True})),
        )
        with pytest.raises(McpProtocolError, match="expected an event stream"):
            await session.initialize()
        await session.close()


class TestOpenSession:
    def test_picks_transport(self):
        assert isinstance(open_session(Endpoint(url=URL)), StreamableHttpSession)
        assert isinstance(open_session(Endpoint(url=URL, transport=TransportKind.SSE)), SseSession)

    def test_client_info(self):
        session = open_session(Endpoint(url=URL), client_info={"name": "probe", "version": "9"})
        assert session.client_info == {"name": "probe", "version": "9"}
