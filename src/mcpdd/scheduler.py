"""Probe cycle scheduler with bounded concurrency and short-circuiting."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from mcpdd.catalog.models import Endpoint, Service
from mcpdd.events.emitter import (
    CYCLE_COMPLETED,
    CYCLE_SKIPPED,
    STATUS_CHANGED,
    EventEmitter,
    MonitorEvent,
)
from mcpdd.history.store import HistoryStore
from mcpdd.probe.models import CheckResult, HealthStatus, hinted_auth
from mcpdd.probe.prober import Prober

logger = logging.getLogger(__name__)

SHORT_CIRCUITED = "short-circuited"


class ProbeScheduler:
    """Runs probe cycles over all services; the only writer of the history store.

    At most one cycle runs at a time. A cycle requested while another is in
    flight is skipped and counted, never queued.
    """

    def __init__(
        self,
        services: Sequence[Service],
        store: HistoryStore,
        prober: Prober,
        *,
        interval: float = 300.0,
        max_concurrent: int = 15,
        rng: random.Random | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._prober = prober
        self._interval = interval
        self._max_concurrent = max(1, max_concurrent)
        self._rng = rng or random.Random()
        self._emitter = emitter
        self._clock = clock
        self._monotonic = monotonic
        self._services: list[Service] = []
        self._cycle_started: float | None = None
        self._tick_tasks: set[asyncio.Task[bool]] = set()
        self.skipped_cycles = 0
        self.last_check: datetime | None = None
        self.next_check: datetime | None = None
        self.replace_services(services)

    @property
    def services(self) -> list[Service]:
        return list(self._services)

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def in_progress(self) -> bool:
        return self._cycle_started is not None

    def cycle_elapsed(self) -> float | None:
        """Seconds the running cycle has been going, None when idle."""
        if self._cycle_started is None:
            return None
        return self._monotonic() - self._cycle_started

    def replace_services(self, services: Sequence[Service]) -> None:
        """Swap in a freshly loaded catalog; only new endpoints get new series."""
        self._services = list(services)
        for service in self._services:
            for endpoint in service.endpoints:
                self._store.initialize(service.identifier, endpoint.url)

    def get_service(self, identifier: str) -> Service | None:
        for service in self._services:
            if service.identifier == identifier:
                return service
        return None

    async def _emit(self, event: MonitorEvent) -> None:
        if self._emitter is not None:
            await self._emitter.emit(event)

    async def run_cycle(self) -> bool:
        """Probe every service once. Returns False if the cycle was skipped."""
        if self._cycle_started is not None:
            self.skipped_cycles += 1
            elapsed = self.cycle_elapsed() or 0.0
            logger.info(
                "Probe already in progress (running %.0fs), skipping (%d consecutive skips)",
                elapsed,
                self.skipped_cycles,
            )
            await self._emit(MonitorEvent(
                event_type=CYCLE_SKIPPED,
                timestamp=datetime.now(UTC),
                data={"skipped_cycles": self.skipped_cycles, "running_seconds": round(elapsed, 1)},
            ))
            return False

        self._cycle_started = self._monotonic()
        self.skipped_cycles = 0
        started = self._cycle_started
        services = list(self._services)
        logger.info("Probe cycle starting (%d services)", len(services))
        try:
            queue: asyncio.Queue[Service] = asyncio.Queue()
            for service in services:
                queue.put_nowait(service)
            workers = [
                asyncio.create_task(self._worker(queue), name=f"probe-worker-{i}")
                for i in range(min(self._max_concurrent, len(services)))
            ]
            await asyncio.gather(*workers)
        finally:
            self._cycle_started = None

        completed = datetime.now(UTC)
        self.last_check = completed
        self.next_check = completed + timedelta(seconds=self._interval)
        elapsed = self._monotonic() - started
        endpoint_count = sum(len(s.endpoints) for s in services)
        logger.info(
            "Probe cycle complete in %.1fs (%d services, %d endpoints)",
            elapsed,
            len(services),
            endpoint_count,
        )
        await self._emit(MonitorEvent(
            event_type=CYCLE_COMPLETED,
            timestamp=completed,
            data={
                "elapsed_seconds": round(elapsed, 1),
                "service_count": len(services),
                "endpoint_count": endpoint_count,
            },
        ))
        return True

    async def _worker(self, queue: asyncio.Queue[Service]) -> None:
        while True:
            try:
                service = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self.probe_service(service)
            except Exception:
                logger.exception("Probing %s failed", service.identifier)

    async def probe_service(self, service: Service) -> None:
        """Probe one service as part of a cycle, short-circuiting redundant endpoints."""
        if not service.is_multi_endpoint:
            for endpoint in service.endpoints:
                await self._record(service, endpoint, await self._prober.probe(endpoint))
            return

        endpoints = list(service.endpoints)
        self._rng.shuffle(endpoints)
        hit_down = False
        for endpoint in endpoints:
            if hit_down:
                result = CheckResult(
                    timestamp=int(self._clock() * 1000),
                    health=HealthStatus.UNKNOWN,
                    auth=hinted_auth(endpoint.expect_auth),
                    error=SHORT_CIRCUITED,
                    short_circuited=True,
                )
                await self._record(service, endpoint, result)
                continue
            result = await self._prober.probe(endpoint)
            await self._record(service, endpoint, result)
            if result.health == HealthStatus.DOWN:
                hit_down = True

    async def probe_service_full(self, service: Service) -> None:
        """Probe every endpoint of *service* in parallel, without short-circuiting."""
        endpoints = list(service.endpoints)
        results = await asyncio.gather(
            *(self._prober.probe(endpoint) for endpoint in endpoints),
            return_exceptions=True,
        )
        for endpoint, result in zip(endpoints, results):
            if isinstance(result, BaseException):
                logger.error("Full probe of %s failed: %s", endpoint.url, result)
                continue
            await self._record(service, endpoint, result)

    async def _record(self, service: Service, endpoint: Endpoint, result: CheckResult) -> None:
        previous = self._store.latest(service.identifier, endpoint.url)
        if not self._store.append(service.identifier, endpoint.url, result):
            return
        latency = f"{result.latency_ms}ms" if result.latency_ms is not None else "---"
        logger.info(
            "  %-32s %-10s auth=%-10s latency=%s%s",
            service.identifier[:30],
            result.health.value,
            result.auth.value,
            latency,
            f" err: {result.error[:50]}" if result.error else "",
        )
        if (
            previous is not None
            and result.timestamp >= previous.timestamp
            and not (previous.short_circuited or result.short_circuited)
            and previous.health != result.health
        ):
            await self._emit(MonitorEvent(
                event_type=STATUS_CHANGED,
                timestamp=datetime.now(UTC),
                service=service.identifier,
                data={
                    "url": endpoint.url,
                    "label": endpoint.label,
                    "previous": previous.health.value,
                    "current": result.health.value,
                    "error": result.error,
                },
            ))

    def tick(self) -> asyncio.Task[bool]:
        """Timer callback: start a cycle in the background.

        A tick that lands while a cycle is running is counted as skipped by
        :meth:`run_cycle` itself.
        """
        task = asyncio.create_task(self.run_cycle(), name="probe-cycle")
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_tasks.discard)
        return task

    async def run_forever(self) -> None:
        """Fire a tick every interval until cancelled."""
        try:
            while True:
                self.tick()
                await asyncio.sleep(self._interval)
        finally:
            pending = list(self._tick_tasks)
            for task in pending:
                task.cancel()
            # cancelled cycles finish closing their sessions before the loop exits
            await asyncio.gather(*pending, return_exceptions=True)
