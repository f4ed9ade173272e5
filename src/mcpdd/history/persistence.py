"""Read and write the persisted history file."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def load_history_file(path: Path) -> dict[str, Any] | None:
    """Return the persisted history mapping, or None if absent or unreadable."""
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError):
        logger.exception("Failed to load history from %s", path)
        return None
    if not isinstance(data, dict):
        logger.error("History file %s does not contain an object, ignoring it", path)
        return None
    return data


def save_history_file(path: Path, blob: dict[str, Any]) -> bool:
    """Write *blob* atomically. Returns False (after logging) on failure."""
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(blob, fh)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError):
        logger.exception("Failed to persist history to %s", path)
        return False
    logger.info("Persisted history to %s", path)
    return True
