"""
File helpers for the Jobber KPI Hub.
Atomic JSON writes and lookup of the newest raw snapshot.

Usage:
    from scripts.lib.utils import atomic_write_json, find_latest_file, load_json
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


def atomic_write_json(data: Dict, file_path: str | Path, indent: int = 2) -> bool:
    """
    Write JSON data to file atomically using temp file + rename.

    Args:
        data: Dictionary to serialize as JSON. Dates and other non-JSON
            values are written with ``str()``.
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        True if successful, False otherwise.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent, default=str)

        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote JSON to %s", file_path)
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        if temp_path.exists():
            temp_path.unlink(missing_ok=True)
        return False


def find_latest_file(directory: str | Path, pattern: str) -> Optional[Path]:
    """Newest file in ``directory`` matching ``pattern``, or None.

    Raw snapshots are named ``<name>_YYYY-MM-DD.json``, so the
    lexicographically greatest name is the latest capture.
    """
    directory = Path(directory)
    if not directory.exists():
        return None
    files = sorted(directory.glob(pattern), key=lambda p: p.name, reverse=True)
    return files[0] if files else None


def load_json(file_path: str | Path) -> Any:
    """Read a JSON file written by ``atomic_write_json``."""
    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)
