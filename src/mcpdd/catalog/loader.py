"""Catalog loading and normalization.

The ingestion pipeline writes ``servers.json`` as a list of providers::

    {"registryName": "...", "registryVersion": "...", "displayName": "...",
     "sseOnly": false,
     "remotes": [{"url": "...", "transport": "streamable-http",
                  "expectAuth": false, "remoteName": "default"}]}

Older deployments kept a flat list (one entry per server, ``id``/``name``/
``url``). :func:`normalize_catalog` is the only place that knows about both.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from mcpdd.catalog.models import Endpoint, Service, TransportKind

logger = logging.getLogger(__name__)


def _normalize_current(entry: dict[str, Any]) -> Service:
    endpoints = tuple(
        Endpoint(
            url=remote["url"],
            transport=remote.get("transport") or TransportKind.STREAMABLE_HTTP,
            expect_auth=bool(remote.get("expectAuth", False)),
            label=remote.get("remoteName") or "default",
        )
        for remote in entry.get("remotes") or []
    )
    return Service(
        identifier=entry["registryName"],
        display_name=entry.get("displayName") or entry["registryName"],
        version=entry.get("registryVersion") or "0.0.0",
        sse_only=bool(entry.get("sseOnly", False)),
        endpoints=endpoints,
    )


def _normalize_legacy(entry: dict[str, Any]) -> Service:
    identifier = entry.get("registryName") or entry["id"]
    transport = entry.get("transport") or TransportKind.STREAMABLE_HTTP
    return Service(
        identifier=identifier,
        display_name=entry.get("name") or identifier,
        version=entry.get("registryVersion") or "0.0.0",
        sse_only=transport == TransportKind.SSE,
        endpoints=(
            Endpoint(
                url=entry["url"],
                transport=transport,
                expect_auth=bool(entry.get("expectAuth", False)),
            ),
        ),
    )


def normalize_catalog(raw: Iterable[Any]) -> list[Service]:
    """Turn raw catalog entries (either shape) into canonical services.

    Malformed entries, services without endpoints and duplicate identifiers
    are dropped with a warning.
    """
    services: list[Service] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            logger.warning("Catalog entry %d is not an object, skipping", index)
            continue
        try:
            if "remotes" in entry:
                service = _normalize_current(entry)
            else:
                service = _normalize_legacy(entry)
        except (KeyError, TypeError, ValidationError) as exc:
            logger.warning("Catalog entry %d is malformed, skipping: %s", index, exc)
            continue
        if not service.endpoints:
            logger.warning("Service %s has no endpoints, skipping", service.identifier)
            continue
        if service.identifier in seen:
            logger.warning("Duplicate service %s in catalog, keeping the first", service.identifier)
            continue
        seen.add(service.identifier)
        services.append(service)
    return services


def load_catalog(path: Path, legacy_path: Path | None = None) -> list[Service]:
    """Load services from *path*, falling back to the legacy flat file."""
    for candidate in (path, legacy_path):
        if candidate is None or not candidate.exists():
            continue
        with candidate.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, list):
            raise ValueError(f"Catalog {candidate} must contain a JSON list")
        services = normalize_catalog(raw)
        logger.info("Loaded %d services from %s", len(services), candidate)
        return services
    logger.warning("No catalog found at %s", path)
    return []
