"""
Lifecycle controller — install, status, rollback and cleanup across all
footprints.

Failure policy is best-effort: one component's failure is recorded in
the operation's report and the remaining components are still
attempted. Only precondition failures (not privileged, missing
capability) abort, and they abort before anything is mutated.

Flow:
    install   preflight → snapshot all → apply each → start loops → audit
    rollback  preflight → stop all loops → rollback each (reverse) → audit
    cleanup   preflight → cleanup each (reverse) → audit

Each operation can be narrowed to a subset of components, and install,
rollback and cleanup have a dry-run form that only reports the steps
they would take.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from footprints.core.errors import (
    DriftError,
    FootprintsError,
    PartialFailure,
    PreconditionError,
    RollbackError,
    RollbackKind,
)
from footprints.core.models.record import INSTALL_ORDER, ComponentId, Health, PersistenceRecord
from footprints.core.models.snapshot import BackupSnapshot
from footprints.core.persistence.audit import AuditEntry, AuditWriter
from footprints.core.primitives import PersistencePrimitive, PrimitiveContext, build_primitives

logger = logging.getLogger(__name__)

# Outcome statuses
INSTALLED = "installed"
OK = "ok"
DEGRADED = "degraded"
FAILED = "failed"
SKIPPED = "skipped"
PLANNED = "planned"

_SUCCESS = {INSTALLED, OK, SKIPPED, PLANNED}

REASSERTED = (ComponentId.TAG, ComponentId.SERVICE)


@dataclass
class ComponentOutcome:
    """What one operation did to one component."""

    component_id: ComponentId
    status: str = OK
    error_kind: str | None = None
    error: str | None = None
    failed_resources: list[str] = field(default_factory=list)
    record: PersistenceRecord | None = None
    plan: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in _SUCCESS

    @classmethod
    def from_error(cls, component_id: ComponentId, error: Exception, status: str = FAILED) -> ComponentOutcome:
        return cls(
            component_id=component_id,
            status=status,
            error_kind=getattr(error, "kind", "error"),
            error=str(error),
            failed_resources=list(getattr(error, "failed", None) or getattr(error, "missing", None) or []),
        )

    def to_dict(self) -> dict:
        return {
            "component": self.component_id.value,
            "status": self.status,
            "error_kind": self.error_kind,
            "error": self.error,
            "failed_resources": self.failed_resources,
            "record": self.record.model_dump(mode="json") if self.record else None,
            "plan": self.plan,
        }


@dataclass
class LifecycleReport:
    """Result of one controller operation."""

    operation_id: str = ""
    operation: str = ""
    correlation_id: str | None = None
    outcomes: dict[ComponentId, ComponentOutcome] = field(default_factory=dict)
    duration_ms: int = 0
    dry_run: bool = False

    def add(self, outcome: ComponentOutcome) -> None:
        self.outcomes[outcome.component_id] = outcome
        marker = "✓" if outcome.ok else "✗" if outcome.status == FAILED else "⚠"
        logger.info("%s %s:%s → %s", marker, self.operation, outcome.component_id, outcome.status)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.status == FAILED)

    @property
    def degraded(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.status == DEGRADED)

    @property
    def planned(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.status == PLANNED)

    @property
    def status(self) -> str:
        if self.succeeded == self.total:
            return "ok"
        if self.failed == self.total:
            return "failed"
        return "partial"

    @property
    def errors(self) -> list[str]:
        return [f"{o.component_id.value}: {o.error}" for o in self.outcomes.values() if o.error]

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "operation": self.operation,
            "correlation_id": self.correlation_id,
            "dry_run": self.dry_run,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "degraded": self.degraded,
            "duration_ms": self.duration_ms,
            "components": [o.to_dict() for o in self.outcomes.values()],
        }


@dataclass
class Inspection:
    """Health of every component plus the drift behind each unhealthy one."""

    health: dict[ComponentId, Health] = field(default_factory=dict)
    drift: dict[ComponentId, DriftError] = field(default_factory=dict)
    correlation_id: str | None = None

    @property
    def healthy(self) -> bool:
        return not self.drift

    def to_dict(self) -> dict:
        return {
            "correlation_id": self.correlation_id,
            "components": {
                cid.value: {
                    "health": health.value,
                    "missing": self.drift[cid].missing if cid in self.drift else [],
                }
                for cid, health in self.health.items()
            },
        }


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


class LifecycleController:
    """Orchestrates the four primitives over one registry and backup store."""

    def __init__(
        self,
        ctx: PrimitiveContext,
        primitives: dict[ComponentId, PersistencePrimitive] | None = None,
        audit: AuditWriter | None = None,
    ):
        self.ctx = ctx
        self.primitives = primitives if primitives is not None else build_primitives(ctx)
        self.audit = audit or AuditWriter(ctx.settings.audit_path)

    def _ordered(
        self,
        reverse: bool = False,
        components: Iterable[ComponentId | str] | None = None,
    ) -> list[tuple[ComponentId, PersistencePrimitive]]:
        wanted = None if components is None else {ComponentId(c) for c in components}
        order = reversed(INSTALL_ORDER) if reverse else INSTALL_ORDER
        return [
            (cid, self.primitives[cid])
            for cid in order
            if cid in self.primitives and (wanted is None or cid in wanted)
        ]

    # ── Preconditions ────────────────────────────────────────────

    def _require_capabilities(self) -> None:
        for role in ("tags", "tasks", "logs"):
            self.ctx.adapters.require(role)

    def preflight(self) -> None:
        """Raise PreconditionError unless mutating operations may run."""
        self._require_capabilities()
        if self.ctx.settings.require_privilege and not self.ctx.adapters.privilege.is_privileged():
            raise PreconditionError("Mutating operations require root privileges")

    # ── Reporting ────────────────────────────────────────────────

    def _begin(self, operation: str) -> LifecycleReport:
        return LifecycleReport(
            operation_id=generate_operation_id(),
            operation=operation,
            correlation_id=self.ctx.registry.correlation_id(),
        )

    def _finish(self, report: LifecycleReport, started: float) -> LifecycleReport:
        report.duration_ms = int((time.monotonic() - started) * 1000)
        if report.correlation_id is None:
            report.correlation_id = self.ctx.registry.correlation_id()
        self.audit.write(AuditEntry(
            operation_id=report.operation_id,
            operation_type=report.operation,
            correlation_id=report.correlation_id,
            components=[cid.value for cid in report.outcomes],
            status=report.status,
            components_total=report.total,
            components_succeeded=report.succeeded,
            components_failed=report.total - report.succeeded,
            duration_ms=report.duration_ms,
            errors=report.errors,
        ))
        logger.info("%s %s: %s (%dms)", report.operation, report.operation_id, report.status, report.duration_ms)
        return report

    def _plan(
        self,
        operation: str,
        components: Iterable[ComponentId | str] | None,
        reverse: bool = False,
        start_loops: bool = False,
    ) -> LifecycleReport:
        """Dry run: what *operation* would do. Mutates and audits nothing."""
        self._require_capabilities()
        started = time.monotonic()
        report = self._begin(operation)
        report.dry_run = True

        for cid, primitive in self._ordered(reverse, components):
            steps = primitive.plan(operation, start_loops=start_loops)
            report.add(ComponentOutcome(cid, PLANNED if steps else SKIPPED, plan=steps))

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("[dry-run] %s: %d component(s) with planned steps", operation, report.planned)
        return report

    # ── Operations ───────────────────────────────────────────────

    def install_all(
        self,
        start_loops: bool = True,
        components: Iterable[ComponentId | str] | None = None,
        dry_run: bool = False,
    ) -> LifecycleReport:
        """Install every footprint, or only *components*.

        Every component that needs one is snapshotted before any
        primitive is applied. Components already installed and healthy
        are returned unchanged; drifted ones are repaired.
        """
        if dry_run:
            return self._plan("install", components, start_loops=start_loops)
        self.preflight()
        started = time.monotonic()
        report = self._begin("install")
        selected = self._ordered(components=components)

        snapshots: dict[ComponentId, BackupSnapshot] = {}
        for cid, primitive in selected:
            if not primitive.needs_snapshot():
                continue
            try:
                snapshots[cid] = primitive.take_snapshot()
            except OSError as e:
                logger.warning("Snapshot of %s failed: %s", cid, e)
                report.add(ComponentOutcome(cid, FAILED, "backup", f"snapshot failed: {e}"))

        for cid, primitive in selected:
            if cid in report.outcomes:
                continue
            snapshot = snapshots.get(cid)
            try:
                record = primitive.apply(snapshot=snapshot)
            except (FootprintsError, OSError) as e:
                report.add(ComponentOutcome.from_error(cid, e))
                continue

            if snapshot is not None and not snapshot.complete:
                partial = PartialFailure(f"snapshot {snapshot.snapshot_id} incomplete", list(snapshot.failed))
                outcome = ComponentOutcome.from_error(cid, partial, status=DEGRADED)
                outcome.record = record
                report.add(outcome)
            else:
                report.add(ComponentOutcome(cid, INSTALLED, record=record))

            if start_loops:
                primitive.start_loop()

        return self._finish(report, started)

    def status(self, components: Iterable[ComponentId | str] | None = None) -> dict[ComponentId, Health]:
        """Health of every component (read-only, no privilege needed)."""
        return {cid: primitive.verify() for cid, primitive in self._ordered(components=components)}

    def inspect(self, components: Iterable[ComponentId | str] | None = None) -> Inspection:
        """Health plus a DriftError for every drifted component."""
        inspection = Inspection(correlation_id=self.ctx.registry.correlation_id())
        for cid, primitive in self._ordered(components=components):
            inspection.health[cid] = primitive.verify()
            try:
                primitive.check()
            except DriftError as e:
                inspection.drift[cid] = e
        return inspection

    def rollback_all(
        self,
        components: Iterable[ComponentId | str] | None = None,
        dry_run: bool = False,
    ) -> LifecycleReport:
        """Roll every footprint (or only *components*) back, in reverse install order.

        All background loops of the selection are stopped before the
        first restore.
        """
        if dry_run:
            return self._plan("rollback", components, reverse=True)
        self.preflight()
        started = time.monotonic()
        report = self._begin("rollback")
        selected = self._ordered(reverse=True, components=components)

        for cid, primitive in selected:
            if primitive.has_loop and not primitive.stop_loop():
                logger.warning("%s: loop not confirmed stopped, continuing", cid)

        for cid, primitive in selected:
            try:
                record = primitive.rollback()
            except RollbackError as e:
                status = DEGRADED if e.kinds == [RollbackKind.PARTIAL_STOP] else FAILED
                report.add(ComponentOutcome.from_error(cid, e, status=status))
                continue
            except (FootprintsError, OSError) as e:
                report.add(ComponentOutcome.from_error(cid, e))
                continue
            report.add(ComponentOutcome(cid, OK if record else SKIPPED, record=record))

        return self._finish(report, started)

    def cleanup_all(
        self,
        components: Iterable[ComponentId | str] | None = None,
        dry_run: bool = False,
    ) -> LifecycleReport:
        """Remove footprints without restoring, and discard their snapshots.

        The correlation id is forgotten once the selection is clean and
        no component holds a record any more.
        """
        if dry_run:
            return self._plan("cleanup", components, reverse=True)
        self.preflight()
        started = time.monotonic()
        report = self._begin("cleanup")

        for cid, primitive in self._ordered(reverse=True, components=components):
            had_record = primitive.record() is not None
            try:
                primitive.cleanup()
            except (FootprintsError, OSError) as e:
                report.add(ComponentOutcome.from_error(cid, e))
                continue
            report.add(ComponentOutcome(cid, OK if had_record else SKIPPED))

        if report.status == "ok" and not self.ctx.registry.records():
            self.ctx.registry.clear_correlation_id()
        return self._finish(report, started)

    def reassert(self) -> LifecycleReport:
        """Re-apply the one-shot footprints (tag, service) if installed.

        Healthy components are left alone; drifted ones are repaired.
        Run periodically by the registered service task.
        """
        self.preflight()
        started = time.monotonic()
        report = self._begin("reassert")

        for cid in REASSERTED:
            primitive = self.primitives.get(cid)
            if primitive is None:
                continue
            record = primitive.record()
            if record is None or not record.active:
                report.add(ComponentOutcome(cid, SKIPPED))
                continue
            drifted = bool(primitive.drift())
            try:
                record = primitive.apply()
            except FootprintsError as e:
                report.add(ComponentOutcome.from_error(cid, e))
                continue
            report.add(ComponentOutcome(cid, INSTALLED if drifted else OK, record=record))

        return self._finish(report, started)

    def run_loops(
        self,
        stop_event: threading.Event,
        components: Iterable[ComponentId | str] | None = None,
    ) -> list[ComponentId]:
        """Host the background loops of installed footprints until *stop_event* is set.

        Returns the components whose loops ran.
        """
        running = [cid for cid, primitive in self._ordered(components=components) if primitive.start_loop()]
        if not running:
            logger.info("No installed footprint has a background loop")
            return running

        logger.info("Hosting loops: %s", ", ".join(running))
        stop_event.wait()

        for cid in reversed(running):
            if not self.primitives[cid].stop_loop():
                logger.warning("%s: loop not confirmed stopped", cid)
        return running
