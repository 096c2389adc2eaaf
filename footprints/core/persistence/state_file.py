"""
State file persistence — atomic read/write of JSON documents.

Writes are atomic (write to temp file in the same directory, then
rename) so a concurrent reader sees either the old or the new document,
never a partial one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str, prefix: str = ".state_", mode: int | None = None) -> None:
    """Write *content* to *path* via temp file + rename.

    Args:
        path: Target path.
        content: Full file content.
        prefix: Temp file prefix (dot-prefixed so directory scans skip it).
        mode: Optional permission bits for the final file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        if mode is not None:
            os.chmod(tmp, mode)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def save_json(data: Any, path: Path) -> None:
    """Serialize *data* to *path* (atomic write)."""
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    try:
        atomic_write_text(path, content)
        logger.debug("State saved to %s", path)
    except OSError as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise


def load_json(path: Path) -> Any | None:
    """Load a JSON document.

    Returns:
        The decoded document, or None when the file is missing, unreadable
        or corrupt. Corruption is logged, never raised.
    """
    if not path.is_file():
        return None

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Corrupt state file %s: %s, treating as absent", path, e)
        return None
    except OSError as e:
        logger.warning("Cannot read state file %s: %s, treating as absent", path, e)
        return None
