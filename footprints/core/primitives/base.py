"""
Persistence primitive — the shared install/verify/rollback lifecycle.

One abstract contract, four variants. The base class owns the state
machine; a variant only says how to install its footprint, how to tell
what is missing, what to undo that a restore would not, and which
resources to snapshot. Each variant also describes its install and
removal steps in words for dry runs.

State machine::

    Uninstalled ──apply──▶ Installed ──rollback──▶ (RollingBack) ──▶ Uninstalled
                           │   ▲  └─apply (healthy)─┘
                     drift │   │ apply (repair)
                           ▼   │
                           Drifted

A rollback that cannot finish leaves a ``failed`` record behind and
raises RollbackError; it never falls back to ``installed``.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from footprints.adapters.registry import AdapterRegistry
from footprints.core.errors import ApplyError, CleanupError, DriftError, RollbackError, RollbackKind
from footprints.core.models.record import ComponentId, Health, PersistenceRecord, RecordStatus
from footprints.core.models.report import HostEnvironment
from footprints.core.models.settings import Settings
from footprints.core.models.snapshot import BackupSnapshot, ResourceLocator
from footprints.core.persistence.registry import StateRegistry
from footprints.core.services.backup import BackupManager
from footprints.core.services.clock import Clock
from footprints.core.services.loops import BackgroundLoop, stop_by_pidfile

logger = logging.getLogger(__name__)


@dataclass
class PrimitiveContext:
    """Everything a primitive needs from its environment."""

    settings: Settings
    adapters: AdapterRegistry
    registry: StateRegistry
    backup: BackupManager
    clock: Clock = field(default_factory=Clock)
    rng: random.Random = field(default_factory=random.Random)
    host: HostEnvironment | None = None
    config_path: Path | None = None


@dataclass
class Installation:
    """What a variant's ``_install`` produced."""

    artifacts: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


class PersistencePrimitive(ABC):
    """Base class of the four footprint variants."""

    component_id: ClassVar[ComponentId]
    has_loop: ClassVar[bool] = False

    def __init__(self, ctx: PrimitiveContext):
        self.ctx = ctx
        self._loop: BackgroundLoop | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.component_id.value}>"

    # ── Variant hooks ────────────────────────────────────────────

    @abstractmethod
    def backup_selector(self) -> list[ResourceLocator]:
        """Resources to snapshot before the first install."""

    @abstractmethod
    def _install(self, correlation_id: str, previous: PersistenceRecord | None) -> Installation:
        """Mutate the host. Raises ApplyError (or OSError)."""

    @abstractmethod
    def _missing(self, record: PersistenceRecord) -> list[str]:
        """Parts of the footprint that no longer match *record*."""

    def _undo(self, record: PersistenceRecord) -> list[str]:
        """Reverse what a restore cannot. Returns resources that failed."""
        return []

    @abstractmethod
    def _remove_artifacts(self, correlation_id: str | None, record: PersistenceRecord | None) -> list[str]:
        """Delete the footprint without restoring. Returns resources that failed."""

    @abstractmethod
    def _describe_install(self) -> list[str]:
        """Host changes a first install makes, one line each."""

    def _describe_undo(self, record: PersistenceRecord) -> list[str]:
        return []

    @abstractmethod
    def _describe_removal(self, record: PersistenceRecord | None) -> list[str]:
        """What ``cleanup`` would delete."""

    def _loop_iteration(self, record: PersistenceRecord) -> dict[str, Any]:
        """One background-loop wake-up. Returns record details to merge."""
        raise NotImplementedError

    def _loop_bounds(self) -> tuple[float, float]:
        raise NotImplementedError

    # ── Helpers ──────────────────────────────────────────────────

    @property
    def settings(self) -> Settings:
        return self.ctx.settings

    def record(self) -> PersistenceRecord | None:
        return self.ctx.registry.get(self.component_id)

    def _fail(self, message: str) -> ApplyError:
        return ApplyError(self.component_id.value, message)

    # ── Snapshot ─────────────────────────────────────────────────

    def needs_snapshot(self) -> bool:
        """Whether an install would need a fresh pre-install snapshot.

        False while a record (installed or failed) still points at a
        readable snapshot: that snapshot holds the true pre-install state.
        """
        record = self.record()
        if record is None or not record.backup_ref:
            return True
        return self.ctx.backup.load(record.backup_ref) is None

    def take_snapshot(self) -> BackupSnapshot:
        return self.ctx.backup.snapshot(self.component_id, self.backup_selector())

    # ── Lifecycle ────────────────────────────────────────────────

    def apply(self, snapshot: BackupSnapshot | None = None) -> PersistenceRecord:
        """Install the footprint, or return the existing healthy record.

        A drifted footprint is re-installed and its record updated. On a
        first install the pre-install snapshot is *snapshot*, or taken
        here when the caller did not take one.

        Raises:
            ApplyError: The host could not be mutated. A ``failed``
                record pointing at the snapshot is stored.
        """
        existing = self.record()

        if existing is not None and existing.active:
            missing = self._missing(existing)
            if not missing:
                logger.debug("%s already installed and healthy", self.component_id)
                return existing
            logger.warning("%s drifted (%s), repairing", self.component_id, ", ".join(missing))
            installation = self._run_install(existing.correlation_id, existing)
            details = {**existing.details, **installation.details}
            details["repairs"] = int(existing.details.get("repairs", 0)) + 1
            record = existing.model_copy(update={
                "artifacts": installation.artifacts or existing.artifacts,
                "details": details,
            })
            self.ctx.registry.put(record)
            logger.info("%s repaired", self.component_id)
            return record

        correlation_id = self.ctx.registry.get_or_create_correlation_id()
        if snapshot is not None:
            backup_ref = snapshot.snapshot_id
        elif not self.needs_snapshot():
            backup_ref = existing.backup_ref  # type: ignore[union-attr]
        else:
            backup_ref = self.take_snapshot().snapshot_id

        try:
            installation = self._run_install(correlation_id, existing)
        except ApplyError:
            self.ctx.registry.put(PersistenceRecord(
                component_id=self.component_id,
                installed_at=self.ctx.clock.iso(),
                correlation_id=correlation_id,
                backup_ref=backup_ref,
                status=RecordStatus.FAILED,
            ))
            raise

        record = PersistenceRecord(
            component_id=self.component_id,
            installed_at=self.ctx.clock.iso(),
            correlation_id=correlation_id,
            backup_ref=backup_ref,
            status=RecordStatus.INSTALLED,
            artifacts=installation.artifacts,
            details=installation.details,
        )
        self.ctx.registry.put(record)
        logger.info("%s installed (snapshot %s)", self.component_id, backup_ref)
        return record

    def _run_install(self, correlation_id: str, previous: PersistenceRecord | None) -> Installation:
        try:
            return self._install(correlation_id, previous)
        except OSError as e:
            raise self._fail(str(e)) from e

    def drift(self) -> list[str]:
        """Missing or diverged parts of an installed footprint (empty if healthy)."""
        record = self.record()
        if record is None:
            return []
        if not record.active:
            return [f"record status {record.status.value}"]
        return self._missing(record)

    def verify(self) -> Health:
        """Compare the registry's claim with the host."""
        record = self.record()
        if record is None:
            return Health.NOT_INSTALLED
        if self.drift():
            return Health.INSTALLED_DRIFTED
        return Health.INSTALLED_HEALTHY

    def check(self) -> None:
        """Raise DriftError when the footprint has drifted."""
        missing = self.drift()
        if missing:
            raise DriftError(self.component_id.value, missing)

    def rollback(self) -> PersistenceRecord | None:
        """Stop the loop, undo, restore the snapshot, clear the record.

        Returns the rolled-back record (None if nothing was recorded).

        Raises:
            RollbackError: The loop was not confirmed stopped (the record
                is still cleared), or undo/restore failed (the record is
                kept with status ``failed``).
        """
        kinds: list[RollbackKind] = []
        messages: list[str] = []
        failed: list[str] = []

        if not self.stop_loop():
            kinds.append(RollbackKind.PARTIAL_STOP)
            messages.append("background loop not confirmed stopped")

        record = self.record()
        if record is None:
            if kinds:
                raise RollbackError(self.component_id.value, kinds, messages)
            logger.debug("%s: nothing to roll back", self.component_id)
            return None

        undo_failed = self._undo(record)
        if undo_failed:
            kinds.append(RollbackKind.UNDO_FAILED)
            messages.append(f"could not undo {len(undo_failed)} resource(s)")
            failed.extend(undo_failed)

        if not record.backup_ref:
            kinds.append(RollbackKind.RESTORE_FAILED)
            messages.append("no snapshot recorded")
        else:
            snapshot = self.ctx.backup.load(record.backup_ref)
            if snapshot is None:
                kinds.append(RollbackKind.RESTORE_FAILED)
                messages.append(f"snapshot {record.backup_ref} not found")
            else:
                result = self.ctx.backup.restore(snapshot)
                if not result.ok:
                    kinds.append(RollbackKind.RESTORE_FAILED)
                    messages.append(f"could not restore {len(result.failed)} resource(s)")
                    failed.extend(result.failed)

        if any(k != RollbackKind.PARTIAL_STOP for k in kinds):
            details = {**record.details, "rollback_errors": messages}
            self.ctx.registry.put(record.model_copy(update={"status": RecordStatus.FAILED, "details": details}))
            logger.warning("%s rollback incomplete: %s", self.component_id, "; ".join(messages))
            raise RollbackError(self.component_id.value, kinds, messages, failed)

        self.ctx.registry.delete(self.component_id)
        logger.info("%s rolled back", self.component_id)
        if kinds:
            raise RollbackError(self.component_id.value, kinds, messages, failed)
        return record.model_copy(update={"status": RecordStatus.ROLLED_BACK})

    def cleanup(self) -> None:
        """Remove the footprint's artifacts without restoring.

        Also discards the component's snapshot. When some artifacts
        cannot be removed the record is kept as ``failed`` together
        with its snapshot, and CleanupError is raised.
        """
        failed: list[str] = []
        if not self.stop_loop():
            failed.append(f"loop:{self.component_id.value}")

        record = self.record()
        correlation_id = record.correlation_id if record else self.ctx.registry.correlation_id()
        failed.extend(self._remove_artifacts(correlation_id, record))

        if failed:
            if record is not None:
                self.ctx.registry.put(record.model_copy(update={"status": RecordStatus.FAILED}))
            raise CleanupError(self.component_id.value, failed)

        self.ctx.registry.delete(self.component_id)
        if record is not None and record.backup_ref:
            self.ctx.backup.discard(record.backup_ref)
        logger.info("%s cleaned up", self.component_id)

    # ── Plans ────────────────────────────────────────────────────

    def plan(self, operation: str, start_loops: bool = False) -> list[str]:
        """Steps *operation* would take on this component, mutating nothing.

        *operation* is ``install``, ``rollback`` or ``cleanup``. An empty
        list means the operation would leave the component as it is.
        """
        record = self.record()
        if operation == "install":
            steps = self._plan_install(record)
            if start_loops and self.has_loop:
                steps.append("start background loop")
            return steps

        steps = []
        if self.has_loop and (self._loop is not None or self.pid_path.exists()):
            steps.append("stop background loop")
        if operation == "rollback":
            if record is not None:
                steps += self._describe_undo(record)
                steps += self._plan_restore(record)
                steps.append("clear record")
            return steps
        if operation == "cleanup":
            steps += self._describe_removal(record)
            if record is not None:
                if record.backup_ref:
                    steps.append(f"discard snapshot {record.backup_ref}")
                steps.append("clear record")
            return steps
        raise ValueError(f"Unknown operation '{operation}'")

    def _plan_install(self, record: PersistenceRecord | None) -> list[str]:
        if record is not None and record.active:
            return [f"repair {missing}" for missing in self._missing(record)]
        if self.needs_snapshot():
            steps = [f"snapshot {locator}" for locator in self.backup_selector()]
        else:
            steps = [f"reuse snapshot {record.backup_ref}"]  # type: ignore[union-attr]
        return steps + self._describe_install()

    def _plan_restore(self, record: PersistenceRecord) -> list[str]:
        if not record.backup_ref:
            return ["no snapshot recorded, nothing to restore"]
        snapshot = self.ctx.backup.load(record.backup_ref)
        if snapshot is None:
            return [f"snapshot {record.backup_ref} not found, nothing to restore"]
        return [f"restore {entry.locator} from {snapshot.snapshot_id}" for entry in snapshot.entries]

    # ── Background loop ──────────────────────────────────────────

    @property
    def pid_path(self) -> Path:
        return self.settings.loops_dir / f"{self.component_id.value}.pid"

    @property
    def loop(self) -> BackgroundLoop | None:
        return self._loop

    def start_loop(self) -> bool:
        """Start the background loop of an installed footprint.

        Only runs after ``apply()`` has stored an installed record.
        Returns whether a loop is running.
        """
        if not self.has_loop:
            return False
        record = self.record()
        if record is None or not record.active:
            logger.debug("%s: not installed, loop not started", self.component_id)
            return False
        if self._loop is not None and self._loop.running:
            return True
        low, high = self._loop_bounds()
        self._loop = BackgroundLoop(
            f"loop-{self.component_id.value}",
            self._tick,
            rng=random.Random(self.ctx.rng.getrandbits(64)),
            min_interval=low,
            max_interval=high,
            pid_path=self.pid_path,
        )
        self._loop.start()
        return True

    def stop_loop(self) -> bool:
        """Stop this footprint's loop, local or hosted by another process.

        Returns True when no loop is left running.
        """
        if not self.has_loop:
            return True
        grace = self.settings.stop_grace_seconds
        if self._loop is not None:
            if not self._loop.stop(grace):
                return False
            self._loop = None
        return stop_by_pidfile(self.pid_path, grace)

    def _tick(self) -> None:
        record = self.record()
        if record is None or not record.active:
            return
        details = self._loop_iteration(record)
        self.ctx.registry.update(self.component_id, **details)
