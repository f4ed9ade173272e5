"""API key authentication dependency for FastAPI."""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request


async def require_api_key(request: Request) -> None:
    """FastAPI dependency that checks X-API-Key on endpoints that trigger probes.

    Auth is disabled when no key is configured.
    """
    config = request.app.state.monitor.config
    if not config.auth.api_key:
        return  # auth disabled
    key = request.headers.get("X-API-Key", "")
    if not hmac.compare_digest(key.encode(), config.auth.api_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
