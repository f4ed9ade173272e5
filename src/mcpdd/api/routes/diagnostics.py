"""Scheduler diagnostics, recent events and catalog changelog."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["diagnostics"])


@router.get("/diagnostics")
async def get_diagnostics(request: Request) -> dict[str, Any]:
    return request.app.state.monitor.diagnostics()


@router.get("/events")
async def get_recent_events(
    request: Request, limit: int = 20, event_type: str | None = None
) -> list[dict[str, Any]]:
    """Return recent monitoring events from the in-memory log."""
    event_log = request.app.state.monitor.event_log
    return [e.to_dict() for e in event_log.get_recent(limit=limit, event_type=event_type)]


@router.get("/changelog")
async def get_changelog(request: Request) -> list[Any]:
    return request.app.state.monitor.changelog()
