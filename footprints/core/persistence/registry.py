"""
State registry — durable record of installed footprints.

Layout under ``<state_dir>/registry/``::

    tag.json, service.json, ...   one PersistenceRecord per component
    correlation_id                the installation's stable identifier

Every write is an atomic replace, and writers inside one process are
serialised by a lock, so the controller and the background loops can
share the registry. A record that cannot be read or validated is
logged and reported as absent ("not installed"), never raised.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

from footprints.core.models.record import INSTALL_ORDER, ComponentId, PersistenceRecord
from footprints.core.persistence.state_file import load_json, save_json

logger = logging.getLogger(__name__)

CORRELATION_FILE = "correlation_id"


def _new_correlation_id() -> str:
    return str(uuid.uuid4()).upper()


class StateRegistry:
    """Per-component records plus the process-wide correlation id."""

    def __init__(self, root: Path, id_factory: Callable[[], str] | None = None):
        self._root = root
        self._id_factory = id_factory or _new_correlation_id
        self._lock = threading.RLock()

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, component_id: ComponentId | str) -> Path:
        return self._root / f"{ComponentId(component_id).value}.json"

    # ── Records ──────────────────────────────────────────────────

    def get(self, component_id: ComponentId | str) -> PersistenceRecord | None:
        """Return the stored record, or None (missing or unreadable)."""
        path = self._path(component_id)
        data = load_json(path)
        if data is None:
            return None
        try:
            return PersistenceRecord.model_validate(data)
        except Exception as e:
            logger.warning("Invalid registry entry %s: %s, treating as absent", path, e)
            return None

    def put(self, record: PersistenceRecord) -> None:
        """Store (replace) the record for its component."""
        with self._lock:
            save_json(record.model_dump(mode="json"), self._path(record.component_id))
        logger.debug("Registry: stored %s (%s)", record.component_id, record.status)

    def update(self, component_id: ComponentId | str, **details: Any) -> PersistenceRecord | None:
        """Merge *details* into an existing record.

        No-op when the record is absent: a loop that outlives its
        record must not bring it back.
        """
        with self._lock:
            record = self.get(component_id)
            if record is None:
                return None
            record.details.update(details)
            save_json(record.model_dump(mode="json"), self._path(component_id))
            return record

    def delete(self, component_id: ComponentId | str) -> bool:
        """Remove the record. Returns whether one existed."""
        with self._lock:
            path = self._path(component_id)
            existed = path.exists()
            path.unlink(missing_ok=True)
        if existed:
            logger.debug("Registry: cleared %s", component_id)
        return existed

    def records(self) -> dict[ComponentId, PersistenceRecord]:
        """All readable records, in install order."""
        out: dict[ComponentId, PersistenceRecord] = {}
        for cid in INSTALL_ORDER:
            record = self.get(cid)
            if record is not None:
                out[cid] = record
        return out

    # ── Correlation id ───────────────────────────────────────────

    def _read_correlation_id(self) -> str | None:
        path = self._root / CORRELATION_FILE
        try:
            value = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            logger.warning("Corrupt correlation id file %s: %s, treating as absent", path, e)
            return None
        except OSError as e:
            logger.warning("Cannot read %s: %s", path, e)
            return None
        return value or None

    def get_or_create_correlation_id(self) -> str:
        """Return the persisted correlation id, creating it on first use.

        Creation is first-writer-wins across processes (hard link of a
        fully written temp file). The value returned is always the one
        read back from disk.
        """
        with self._lock:
            existing = self._read_correlation_id()
            if existing:
                return existing

            path = self._root / CORRELATION_FILE
            self._root.mkdir(parents=True, exist_ok=True)
            candidate = self._id_factory()

            fd, tmp_path = tempfile.mkstemp(dir=self._root, prefix=".corr_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(candidate + "\n")
                try:
                    os.link(tmp, path)
                    logger.info("Generated correlation id %s", candidate)
                except FileExistsError:
                    # Present but empty/unreadable: replace it
                    if not self._read_correlation_id():
                        tmp.replace(path)
                        logger.warning("Replaced unreadable correlation id file %s", path)
            finally:
                tmp.unlink(missing_ok=True)

            value = self._read_correlation_id()
            if not value:
                raise OSError(f"Correlation id not readable after write: {path}")
            return value

    def correlation_id(self) -> str | None:
        """The persisted correlation id, without creating one."""
        return self._read_correlation_id()

    def clear_correlation_id(self) -> None:
        """Forget the correlation id (explicit cleanup only)."""
        with self._lock:
            (self._root / CORRELATION_FILE).unlink(missing_ok=True)
