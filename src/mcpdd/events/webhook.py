"""Fire-and-forget webhook delivery listener."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import TYPE_CHECKING

import httpx

from mcpdd.events.emitter import MonitorEvent

if TYPE_CHECKING:
    from mcpdd.config.models import WebhookConfig

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Mcpdd-Signature"


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class WebhookListener:
    """Delivers events to configured webhook URLs. Implements EventListener protocol."""

    def __init__(self, webhooks: list[WebhookConfig], timeout: float = 10.0) -> None:
        self._webhooks = webhooks
        self._timeout = timeout
        self._pending: set[asyncio.Task[None]] = set()

    async def on_event(self, event: MonitorEvent) -> None:
        for wh in self._webhooks:
            if event.event_type in wh.events or "*" in wh.events:
                task = asyncio.create_task(self._deliver(wh, event), name=f"webhook-{wh.url}")
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _deliver(self, wh: WebhookConfig, event: MonitorEvent) -> None:
        try:
            # Serialize once, sign and send the exact same bytes
            body_bytes = json.dumps(event.to_dict()).encode()
            headers: dict[str, str] = {"Content-Type": "application/json"}
            if wh.secret:
                headers[SIGNATURE_HEADER] = sign_payload(wh.secret, body_bytes)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                await client.post(wh.url, content=body_bytes, headers=headers)
        except Exception:
            logger.exception("Webhook delivery failed for %s (event: %s)", wh.url, event.event_type)
