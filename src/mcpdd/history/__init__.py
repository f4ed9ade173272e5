"""Check history: in-memory store and file persistence."""

from mcpdd.history.persistence import load_history_file, save_history_file
from mcpdd.history.store import DEFAULT_RETENTION_SECONDS, HistoryStore, history_key

__all__ = [
    "DEFAULT_RETENTION_SECONDS",
    "HistoryStore",
    "history_key",
    "load_history_file",
    "save_history_file",
]
