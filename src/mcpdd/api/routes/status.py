"""Status snapshot, per-service detail and on-demand probe endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from mcpdd.api.auth import require_api_key
from mcpdd.monitor import Monitor

router = APIRouter(tags=["status"])


def _monitor(request: Request) -> Monitor:
    return request.app.state.monitor


@router.get("/status")
async def get_status(request: Request) -> dict[str, Any]:
    return _monitor(request).snapshot()


# Registry names contain slashes ("io.github.org/server"), hence the path converter.
@router.post("/server/{identifier:path}/probe", dependencies=[Depends(require_api_key)])
async def probe_server(request: Request, identifier: str) -> dict[str, Any]:
    detail = await _monitor(request).probe_service(identifier)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Unknown service: {identifier}")
    return detail


@router.get("/server/{identifier:path}")
async def get_server(request: Request, identifier: str) -> dict[str, Any]:
    detail = _monitor(request).service_detail(identifier)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Unknown service: {identifier}")
    return detail
