"""Monitored service catalog."""

from mcpdd.catalog.loader import load_catalog, normalize_catalog
from mcpdd.catalog.models import Endpoint, Service, TransportKind

__all__ = ["Endpoint", "Service", "TransportKind", "load_catalog", "normalize_catalog"]
