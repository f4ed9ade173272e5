"""Bounded in-memory history of check results, one series per endpoint."""

from __future__ import annotations

import bisect
import logging
import time
from collections import deque
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from mcpdd.probe.models import CheckResult

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


def _timestamp(result: CheckResult) -> int:
    return result.timestamp


def history_key(service_id: str, url: str) -> str:
    """Composite key used in memory and in the persisted layout."""
    return f"{service_id}|{url}"


class HistoryStore:
    """Time-ordered check results per (service, endpoint URL).

    Series only ever grow at the back and shrink at the front, so trimming
    expired entries is a run of ``popleft`` calls.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._retention_ms = int(retention_seconds * 1000)
        self._clock = clock
        self._series: dict[str, deque[CheckResult]] = {}

    @property
    def retention_ms(self) -> int:
        return self._retention_ms

    def _cutoff(self) -> int:
        return int(self._clock() * 1000) - self._retention_ms

    def initialize(self, service_id: str, url: str) -> None:
        """Create an empty series for an endpoint; existing series are kept."""
        self._series.setdefault(history_key(service_id, url), deque())

    def __contains__(self, key: object) -> bool:
        return key in self._series

    def __len__(self) -> int:
        return len(self._series)

    def keys(self) -> Iterator[str]:
        return iter(self._series)

    def append(self, service_id: str, url: str, result: CheckResult) -> bool:
        """Add *result* and evict expired entries. Unknown endpoints are ignored."""
        series = self._series.get(history_key(service_id, url))
        if series is None:
            return False
        if series and result.timestamp < series[-1].timestamp:
            # a full probe can finish after a newer cycle result was stored
            bisect.insort(series, result, key=_timestamp)
        else:
            series.append(result)
        self._trim(series, self._cutoff())
        return True

    @staticmethod
    def _trim(series: deque[CheckResult], cutoff: int) -> None:
        while series and series[0].timestamp < cutoff:
            series.popleft()

    def series(self, service_id: str, url: str) -> list[CheckResult]:
        return list(self._series.get(history_key(service_id, url), ()))

    def latest(self, service_id: str, url: str) -> CheckResult | None:
        series = self._series.get(history_key(service_id, url))
        return series[-1] if series else None

    def load(self, blob: Mapping[str, Any]) -> int:
        """Merge persisted series into known endpoints, dropping expired entries.

        Returns the number of entries loaded.
        """
        cutoff = self._cutoff()
        loaded = 0
        for key, raw_entries in blob.items():
            series = self._series.get(key)
            if series is None or not isinstance(raw_entries, list):
                continue
            restored: list[CheckResult] = []
            for raw in raw_entries:
                try:
                    result = CheckResult.from_dict(raw)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Dropping malformed history entry for %s: %s", key, exc)
                    continue
                if result.timestamp >= cutoff:
                    restored.append(result)
            merged = sorted([*restored, *series], key=_timestamp)
            series.clear()
            series.extend(merged)
            self._trim(series, cutoff)
            loaded += len(restored)
        return loaded

    def dump(self) -> dict[str, list[dict[str, Any]]]:
        return {key: [r.to_dict() for r in series] for key, series in self._series.items()}
