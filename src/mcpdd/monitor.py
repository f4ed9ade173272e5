"""Monitor runtime: wires catalog, prober, scheduler, history and events."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from mcpdd.aggregate import build_service_summary, build_snapshot
from mcpdd.catalog.loader import load_catalog
from mcpdd.catalog.models import Service
from mcpdd.config.models import MonitorConfig
from mcpdd.events.emitter import EventEmitter
from mcpdd.events.log import EventLog
from mcpdd.events.webhook import WebhookListener
from mcpdd.history.persistence import load_history_file, save_history_file
from mcpdd.history.store import HistoryStore
from mcpdd.probe.prober import Prober
from mcpdd.probe.session import open_session
from mcpdd.scheduler import ProbeScheduler

logger = logging.getLogger(__name__)


class Monitor:
    """Owns one history store and the background loops that feed it."""

    def __init__(
        self,
        config: MonitorConfig,
        services: Sequence[Service],
        *,
        prober: Prober | None = None,
        store: HistoryStore | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._clock = clock
        self.store = store or HistoryStore(config.history.retention_seconds, clock=clock)
        client_info = {"name": config.mcpdd.name, "version": config.mcpdd.version}
        self.prober = prober or Prober(
            timeout=config.probe.timeout_seconds,
            close_timeout=config.probe.close_timeout_seconds,
            session_factory=lambda endpoint, timeout: open_session(
                endpoint, timeout=timeout, client_info=client_info
            ),
            clock=clock,
        )

        self.event_log = EventLog(config.event_log_size)
        self.emitter = EventEmitter()
        self.emitter.add_listener(self.event_log)
        self._webhooks: WebhookListener | None = None
        if config.webhooks:
            self._webhooks = WebhookListener(config.webhooks)
            self.emitter.add_listener(self._webhooks)

        self.scheduler = ProbeScheduler(
            services,
            self.store,
            self.prober,
            interval=config.probe.interval_seconds,
            max_concurrent=config.probe.max_concurrent,
            rng=rng,
            emitter=self.emitter,
            clock=clock,
        )
        self._tasks: list[asyncio.Task[None]] = []

    @classmethod
    def from_config(cls, config: MonitorConfig) -> Monitor:
        services = load_catalog(Path(config.catalog.path), Path(config.catalog.legacy_path))
        return cls(config, services)

    @property
    def history_path(self) -> Path:
        return Path(self.config.history.path)

    @property
    def services(self) -> list[Service]:
        return self.scheduler.services

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get_service(self, identifier: str) -> Service | None:
        return self.scheduler.get_service(identifier)

    # ── persistence ──

    def load_history(self) -> int:
        blob = load_history_file(self.history_path)
        if blob is None:
            return 0
        loaded = self.store.load(blob)
        logger.info("Loaded %d history entries from %s", loaded, self.history_path)
        return loaded

    async def flush_history(self) -> bool:
        return await asyncio.to_thread(save_history_file, self.history_path, self.store.dump())

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.history.persist_interval_seconds)
            await self.flush_history()

    # ── lifecycle ──

    async def start(self) -> None:
        """Restore history and start the probe and persistence loops."""
        self.load_history()
        endpoint_count = sum(len(s.endpoints) for s in self.services)
        logger.info(
            "Monitoring %d services (%d endpoints), probe every %gs",
            len(self.services),
            endpoint_count,
            self.scheduler.interval,
        )
        self._tasks = [
            asyncio.create_task(self.scheduler.run_forever(), name="mcpdd-probe-loop"),
            asyncio.create_task(self._flush_loop(), name="mcpdd-flush-loop"),
        ]

    async def stop(self) -> None:
        """Cancel background loops and persist history one last time."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        if self._webhooks is not None:
            await self._webhooks.drain()
        await self.flush_history()

    # ── queries ──

    def snapshot(self) -> dict[str, Any]:
        return build_snapshot(
            self.services,
            self.store,
            self.now_ms(),
            last_check=self.scheduler.last_check,
            next_check=self.scheduler.next_check,
        )

    def service_detail(self, identifier: str) -> dict[str, Any] | None:
        service = self.get_service(identifier)
        if service is None:
            return None
        return build_service_summary(service, self.store, self.now_ms()).to_dict()

    async def probe_service(self, identifier: str) -> dict[str, Any] | None:
        """Full (non short-circuited) probe of one service, then its fresh detail."""
        service = self.get_service(identifier)
        if service is None:
            return None
        await self.scheduler.probe_service_full(service)
        return build_service_summary(service, self.store, self.now_ms()).to_dict()

    def diagnostics(self) -> dict[str, Any]:
        elapsed = self.scheduler.cycle_elapsed()
        return {
            "skipped_cycles": self.scheduler.skipped_cycles,
            "cycle_in_progress": self.scheduler.in_progress,
            "cycle_elapsed_seconds": round(elapsed, 1) if elapsed is not None else None,
            "last_check": self.scheduler.last_check.isoformat() if self.scheduler.last_check else None,
            "next_check": self.scheduler.next_check.isoformat() if self.scheduler.next_check else None,
            "service_count": len(self.services),
            "endpoint_count": sum(len(s.endpoints) for s in self.services),
        }

    def changelog(self) -> list[Any]:
        """Catalog changelog written by the ingestion pipeline, [] if unavailable."""
        path = Path(self.config.catalog.changelog_path)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read changelog %s: %s", path, exc)
            return []
        return data if isinstance(data, list) else []
