"""mcpdd configuration system."""

from mcpdd.config.loader import find_config_file, load_config
from mcpdd.config.models import (
    AuthConfig,
    CatalogConfig,
    HistoryConfig,
    MonitorConfig,
    ProbeConfig,
    WebhookConfig,
)

__all__ = [
    "AuthConfig",
    "CatalogConfig",
    "HistoryConfig",
    "MonitorConfig",
    "ProbeConfig",
    "WebhookConfig",
    "find_config_file",
    "load_config",
]
