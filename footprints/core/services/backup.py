"""
Backup & restore — pre-mutation snapshots of OS-state fragments.

Layout under ``backup_dir``::

    <snapshot_id>/
        manifest.json       the BackupSnapshot (entries, digests, failures)
        payload.tar.gz      copies of every file/directory that existed

Snapshots are captured once and never rewritten. Restores handle every
resource on its own: a resource that cannot be restored is reported in
the RestoreResult and the others still run. Restoring twice is safe,
because a resource that already matches its snapshot (same digest, or
still absent) is left untouched.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from footprints.adapters.base import TagAdapter
from footprints.core.errors import PartialFailure
from footprints.core.models.record import ComponentId
from footprints.core.models.snapshot import BackupSnapshot, ResourceLocator, SnapshotEntry
from footprints.core.persistence.state_file import load_json, save_json
from footprints.core.services.clock import Clock

logger = logging.getLogger(__name__)

MANIFEST = "manifest.json"
PAYLOAD = "payload.tar.gz"


class _ResourceError(Exception):
    """A single resource could not be captured or restored."""


@dataclass
class RestoreResult:
    """Per-resource outcome of a restore."""

    snapshot_id: str
    restored: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failure(self) -> None:
        """Raise PartialFailure listing the resources that failed."""
        if self.failed:
            raise PartialFailure(f"restore of {self.snapshot_id} incomplete", list(self.failed))

    def to_dict(self) -> dict:
        return {
            "snapshot_id": self.snapshot_id,
            "restored": self.restored,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }


# ═══════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════


def _file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def digest_path(path: Path) -> str:
    """SHA-256 of a file, or of a directory tree (names + contents)."""
    if not path.is_dir():
        return _file_digest(path)
    h = hashlib.sha256()
    for child in sorted(path.rglob("*")):
        rel = child.relative_to(path).as_posix()
        if child.is_dir():
            h.update(f"d:{rel}\n".encode())
        else:
            h.update(f"f:{rel}:{_file_digest(child)}\n".encode())
    return h.hexdigest()


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


# ═══════════════════════════════════════════════════════════════════
#  Manager
# ═══════════════════════════════════════════════════════════════════


class BackupManager:
    """Owns every BackupSnapshot; records only hold their ids.

    Args:
        root: Directory holding one sub-directory per snapshot.
        tags: Tag capability, needed for ``kind='tag'`` locators.
        clock: Time source for snapshot ids and capture times.
    """

    def __init__(self, root: Path, tags: TagAdapter | None = None, clock: Clock | None = None):
        self._root = root
        self._tags = tags
        self._clock = clock or Clock()

    @property
    def root(self) -> Path:
        return self._root

    def _new_id(self, component_id: ComponentId) -> str:
        now = self._clock.now().strftime("%Y%m%dT%H%M%S")
        return f"snap-{component_id.value}-{now}-{uuid.uuid4().hex[:6]}"

    # ── Snapshot ─────────────────────────────────────────────────

    def snapshot(self, component_id: ComponentId, selector: Iterable[ResourceLocator]) -> BackupSnapshot:
        """Capture the current state of every selected resource.

        Resources that cannot be captured are listed in ``failed``;
        the snapshot is stored regardless.
        """
        snapshot_id = self._new_id(component_id)
        snap_dir = self._root / snapshot_id
        snap_dir.mkdir(parents=True, exist_ok=False)

        entries: list[SnapshotEntry] = []
        failed: list[str] = []

        with tarfile.open(snap_dir / PAYLOAD, "w:gz") as tar:
            for index, locator in enumerate(selector):
                try:
                    if locator.kind == "tag":
                        entries.append(self._capture_tag(locator))
                    else:
                        entries.append(self._capture_file(locator, tar, f"r{index:03d}"))
                except (OSError, tarfile.TarError, _ResourceError) as e:
                    logger.warning("Snapshot %s: could not capture %s: %s", snapshot_id, locator, e)
                    failed.append(str(locator))

        snapshot = BackupSnapshot(
            snapshot_id=snapshot_id,
            component_id=component_id,
            captured_at=self._clock.iso(),
            entries=tuple(entries),
            failed=tuple(failed),
        )
        save_json(snapshot.model_dump(mode="json"), snap_dir / MANIFEST)
        logger.info(
            "Snapshot %s: %d resource(s) captured, %d failed",
            snapshot_id, len(entries), len(failed),
        )
        return snapshot

    def _capture_file(self, locator: ResourceLocator, tar: tarfile.TarFile, name: str) -> SnapshotEntry:
        path = Path(locator.target)
        if not _exists(path):
            return SnapshotEntry(locator=locator, existed=False)
        is_dir = path.is_dir()
        digest = digest_path(path)
        tar.add(str(path), arcname=name)
        return SnapshotEntry(locator=locator, existed=True, is_dir=is_dir, digest=digest, payload=name)

    def _capture_tag(self, locator: ResourceLocator) -> SnapshotEntry:
        if self._tags is None:
            raise _ResourceError("no tag adapter configured")
        receipt = self._tags.read_tag(locator.target, locator.key)
        if receipt.failed:
            raise _ResourceError(receipt.error or "read_tag failed")
        present = bool(receipt.metadata.get("present"))
        return SnapshotEntry(locator=locator, existed=present, value=receipt.output if present else None)

    # ── Lookup ───────────────────────────────────────────────────

    def load(self, snapshot_id: str) -> BackupSnapshot | None:
        """Read a stored snapshot, or None if missing/corrupt."""
        data = load_json(self._root / snapshot_id / MANIFEST)
        if data is None:
            return None
        try:
            return BackupSnapshot.model_validate(data)
        except Exception as e:
            logger.warning("Invalid snapshot manifest %s: %s", snapshot_id, e)
            return None

    def list_snapshots(self) -> list[BackupSnapshot]:
        """All readable snapshots, oldest first."""
        if not self._root.is_dir():
            return []
        out = []
        for child in sorted(self._root.iterdir()):
            if child.is_dir() and child.name.startswith("snap-"):
                snap = self.load(child.name)
                if snap is not None:
                    out.append(snap)
        return sorted(out, key=lambda s: s.captured_at)

    def discard(self, snapshot_id: str) -> bool:
        """Delete a snapshot. The only way snapshots are ever removed."""
        snap_dir = self._root / snapshot_id
        if not snap_dir.is_dir():
            return False
        shutil.rmtree(snap_dir)
        logger.info("Discarded snapshot %s", snapshot_id)
        return True

    # ── Restore ──────────────────────────────────────────────────

    def restore(self, snapshot: BackupSnapshot) -> RestoreResult:
        """Put every captured resource back to its snapshot state."""
        result = RestoreResult(snapshot_id=snapshot.snapshot_id)
        payload = self._root / snapshot.snapshot_id / PAYLOAD

        for entry in snapshot.entries:
            key = str(entry.locator)
            try:
                if entry.locator.kind == "tag":
                    changed = self._restore_tag(entry)
                else:
                    changed = self._restore_file(entry, payload)
            except (OSError, tarfile.TarError, _ResourceError) as e:
                logger.warning("Restore %s: %s failed: %s", snapshot.snapshot_id, key, e)
                result.failed[key] = str(e)
                continue
            (result.restored if changed else result.unchanged).append(key)

        for key in snapshot.failed:
            result.failed[key] = "not captured at snapshot time"

        logger.info(
            "Restore %s: %d restored, %d unchanged, %d failed",
            snapshot.snapshot_id, len(result.restored), len(result.unchanged), len(result.failed),
        )
        return result

    def _restore_file(self, entry: SnapshotEntry, payload: Path) -> bool:
        path = Path(entry.locator.target)
        exists = _exists(path)

        if not entry.existed:
            if not exists:
                return False
            _remove(path)
            return True

        if exists and path.is_dir() == entry.is_dir and digest_path(path) == entry.digest:
            return False

        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=path.parent, prefix=".restore_") as staging:
            with tarfile.open(payload, "r:gz") as tar:
                prefix = f"{entry.payload}/"
                members = [
                    m for m in tar.getmembers()
                    if m.name == entry.payload or m.name.startswith(prefix)
                ]
                if not members:
                    raise _ResourceError(f"payload {entry.payload} missing from archive")
                tar.extractall(staging, members=members, filter="data")
            if exists:
                _remove(path)
            os.replace(Path(staging) / str(entry.payload), path)
        return True

    def _restore_tag(self, entry: SnapshotEntry) -> bool:
        if self._tags is None:
            raise _ResourceError("no tag adapter configured")
        loc = entry.locator
        current = self._tags.read_tag(loc.target, loc.key)
        if current.failed:
            raise _ResourceError(current.error or "read_tag failed")
        present = bool(current.metadata.get("present"))

        if entry.existed:
            if present and current.output == entry.value:
                return False
            receipt = self._tags.set_tag(loc.target, loc.key, entry.value or "")
        else:
            if not present:
                return False
            receipt = self._tags.clear_tag(loc.target, loc.key)

        if receipt.failed:
            raise _ResourceError(receipt.error or f"{receipt.operation} failed")
        return True
