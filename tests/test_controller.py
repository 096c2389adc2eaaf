"""
Tests for the lifecycle controller — install, status, rollback and cleanup
across all four footprints.
"""

import os
import threading
from pathlib import Path

import pytest

from footprints.adapters.registry import AdapterRegistry
from footprints.core.engine.controller import (
    DEGRADED,
    FAILED,
    INSTALLED,
    OK,
    PLANNED,
    SKIPPED,
    LifecycleController,
    generate_operation_id,
)
from footprints.core.errors import PreconditionError
from footprints.core.models.record import INSTALL_ORDER, ComponentId, Health, RecordStatus
from footprints.core.models.report import HostEnvironment
from footprints.core.primitives import PrimitiveContext
from footprints.core.use_cases.lifecycle import build_context


class TestPreconditions:
    def test_unprivileged_mutates_nothing(self, settings, clock):
        """Without privilege every mutating operation fails before touching anything."""
        adapters = AdapterRegistry.mock(privileged=False)
        controller = LifecycleController(build_context(settings, adapters, clock=clock))

        for operation in (controller.install_all, controller.rollback_all, controller.cleanup_all, controller.reassert):
            with pytest.raises(PreconditionError):
                operation()

        assert adapters.tags.call_log == []
        assert adapters.tasks.call_log == []
        assert not Path(settings.state_dir).exists()
        assert not Path(settings.log_injection.log_dir).exists()

    def test_privilege_not_required(self, settings, clock):
        """require_privilege off lets an unprivileged install run."""
        settings.require_privilege = False
        adapters = AdapterRegistry.mock(privileged=False)
        controller = LifecycleController(build_context(settings, adapters, clock=clock))
        assert controller.install_all(start_loops=False).status == "ok"

    def test_missing_capability(self, settings, clock):
        """A missing capability is a precondition failure."""
        adapters = AdapterRegistry(mock_mode=True)
        controller = LifecycleController(build_context(settings, adapters, clock=clock))
        with pytest.raises(PreconditionError, match="tags"):
            controller.install_all()

    def test_status_needs_no_privilege(self, settings, clock):
        """status needs no privilege."""
        adapters = AdapterRegistry.mock(privileged=False)
        controller = LifecycleController(build_context(settings, adapters, clock=clock))
        assert set(controller.status().values()) == {Health.NOT_INSTALLED}


class TestInstall:
    def test_full_lifecycle(self, controller: LifecycleController, adapters: AdapterRegistry, settings, wait_for):
        """Install, loops and rollback leave the host as it was."""
        report = controller.install_all(start_loops=True)
        assert report.status == "ok"
        assert list(report.outcomes) == list(INSTALL_ORDER)
        assert all(o.status == INSTALLED for o in report.outcomes.values())
        assert report.correlation_id is not None
        assert controller.status() == {cid: Health.INSTALLED_HEALTHY for cid in INSTALL_ORDER}

        log = controller.primitives[ComponentId.LOG_INJECTION]
        forgery = controller.primitives[ComponentId.REPORT_FORGERY]
        assert wait_for(lambda: log.record().details["emitted"] >= 2)
        assert wait_for(lambda: forgery.record().details["written"] >= 2)

        rollback = controller.rollback_all()
        assert rollback.status == "ok"
        assert list(rollback.outcomes) == list(reversed(INSTALL_ORDER))
        assert controller.status() == {cid: Health.NOT_INSTALLED for cid in INSTALL_ORDER}

        assert adapters.tags.tags == {}
        assert adapters.tasks.tasks == {}
        assert not Path(settings.tag.identity_marker).exists()
        assert not Path(settings.log_injection.log_dir).exists()
        assert not Path(settings.report_forgery.report_dir).exists()
        assert not list(settings.loops_dir.glob("*.pid"))

    def test_snapshots_precede_every_apply(self, controller: LifecycleController, ctx: PrimitiveContext, monkeypatch):
        """All snapshots are taken before the first apply."""
        events = []
        snapshot = ctx.backup.snapshot

        def spy_snapshot(cid, selector):
            events.append(("snapshot", cid))
            return snapshot(cid, selector)

        monkeypatch.setattr(ctx.backup, "snapshot", spy_snapshot)
        for cid, primitive in controller.primitives.items():
            install = primitive._install

            def spy_install(correlation_id, previous, _cid=cid, _install=install):
                events.append(("install", _cid))
                return _install(correlation_id, previous)

            monkeypatch.setattr(primitive, "_install", spy_install)

        controller.install_all(start_loops=False)
        kinds = [kind for kind, _ in events]
        assert kinds == ["snapshot"] * 4 + ["install"] * 4

    def test_second_install_is_noop(self, controller: LifecycleController, ctx: PrimitiveContext, adapters):
        """A second install changes nothing and takes no snapshots."""
        first = controller.install_all(start_loops=False)
        snapshots = len(ctx.backup.list_snapshots())
        emits = len(adapters.logs.entries)

        second = controller.install_all(start_loops=False)
        assert second.status == "ok"
        assert len(ctx.backup.list_snapshots()) == snapshots == 4
        assert len(adapters.logs.entries) == emits
        for cid in INSTALL_ORDER:
            assert second.outcomes[cid].record == first.outcomes[cid].record

    def test_one_failure_does_not_stop_others(self, controller: LifecycleController, adapters: AdapterRegistry):
        """One failed component does not stop the others."""
        adapters.tags.set_failure("set_tag", "read-only")
        report = controller.install_all(start_loops=False)

        assert report.status == "partial"
        assert report.outcomes[ComponentId.TAG].status == FAILED
        assert report.outcomes[ComponentId.TAG].error_kind == "apply"
        for cid in INSTALL_ORDER[1:]:
            assert report.outcomes[cid].status == INSTALLED
        assert adapters.tasks.tasks
        assert adapters.logs.entries

    def test_incomplete_snapshot_is_degraded(self, controller: LifecycleController, adapters: AdapterRegistry):
        """An incomplete snapshot makes the outcome degraded."""
        adapters.tags.set_failure("read_tag")
        report = controller.install_all(start_loops=False)

        outcome = report.outcomes[ComponentId.TAG]
        assert outcome.status == DEGRADED
        assert outcome.error_kind == "partial_failure"
        assert len(outcome.failed_resources) == 2
        assert outcome.record is not None
        assert report.status == "partial"

    def test_all_failed(self, controller: LifecycleController, adapters: AdapterRegistry, settings):
        """Every component failing makes the operation failed."""
        adapters.tags.set_failure("set_tag")
        adapters.tasks.set_failure("register_task")
        adapters.logs.set_failure("emit")
        Path(settings.report_forgery.report_dir).parent.mkdir(parents=True, exist_ok=True)
        Path(settings.report_forgery.report_dir).write_text("a file where a directory should be")

        report = controller.install_all(start_loops=False)
        assert report.status == "failed"
        assert report.failed == 4

    def test_rejected_report_is_contained(self, controller: LifecycleController, ctx: PrimitiveContext):
        """A report rejected by its reader fails only report_forgery."""
        ctx.host = HostEnvironment(os_version="14.4.1 beta")
        report = controller.install_all(start_loops=False)

        assert report.status == "partial"
        outcome = report.outcomes[ComponentId.REPORT_FORGERY]
        assert outcome.status == FAILED
        assert outcome.error_kind == "apply"
        for cid in INSTALL_ORDER[:-1]:
            assert report.outcomes[cid].status == INSTALLED
        assert controller.audit.read_all()[-1].operation_id == report.operation_id


class TestRollback:
    def test_nothing_installed(self, controller: LifecycleController):
        """Rolling back with nothing installed skips every component."""
        report = controller.rollback_all()
        assert report.status == "ok"
        assert {o.status for o in report.outcomes.values()} == {SKIPPED}

    def test_restore_failure_reported(self, controller: LifecycleController, adapters: AdapterRegistry):
        """A restore failure fails that component only."""
        controller.install_all(start_loops=False)
        adapters.tags.set_failure("clear_tag")

        report = controller.rollback_all()
        assert report.status == "partial"
        assert report.outcomes[ComponentId.TAG].status == FAILED
        assert report.outcomes[ComponentId.SERVICE].status == OK
        assert controller.primitives[ComponentId.TAG].record().status == RecordStatus.FAILED

    def test_unconfirmed_stop_is_degraded(self, controller: LifecycleController, settings):
        """A loop that will not stop makes rollback degraded."""
        controller.install_all(start_loops=False)
        settings.stop_grace_seconds = 0.1
        pid_path = controller.primitives[ComponentId.LOG_INJECTION].pid_path
        pid_path.parent.mkdir(parents=True, exist_ok=True)
        pid_path.write_text(f"{os.getpid()}\n")

        report = controller.rollback_all()
        outcome = report.outcomes[ComponentId.LOG_INJECTION]
        assert outcome.status == DEGRADED
        assert outcome.error_kind == "rollback"
        assert controller.primitives[ComponentId.LOG_INJECTION].record() is None
        pid_path.unlink()


class TestCleanup:
    def test_cleanup_discards_everything(self, controller: LifecycleController, ctx: PrimitiveContext):
        """Cleanup discards snapshots, records and the correlation id."""
        controller.install_all(start_loops=False)
        report = controller.cleanup_all()
        assert report.status == "ok"
        assert ctx.backup.list_snapshots() == []
        assert ctx.registry.records() == {}
        assert ctx.registry.correlation_id() is None

    def test_failed_cleanup_keeps_correlation_id(self, controller: LifecycleController, ctx, adapters):
        """A failed cleanup keeps the correlation id."""
        controller.install_all(start_loops=False)
        adapters.tasks.set_failure("unregister_task")
        report = controller.cleanup_all()
        assert report.outcomes[ComponentId.SERVICE].status == FAILED
        assert ctx.registry.correlation_id() is not None


class TestReassert:
    def test_not_installed_is_skipped(self, controller: LifecycleController):
        """Nothing installed means nothing to reassert."""
        report = controller.reassert()
        assert {o.status for o in report.outcomes.values()} == {SKIPPED}
        assert list(report.outcomes) == [ComponentId.TAG, ComponentId.SERVICE]

    def test_repairs_drift(self, controller: LifecycleController, adapters: AdapterRegistry, settings):
        """reassert repairs a removed tag."""
        controller.install_all(start_loops=False)
        adapters.tags.tags.clear()

        report = controller.reassert()
        assert report.outcomes[ComponentId.TAG].status == INSTALLED
        assert report.outcomes[ComponentId.SERVICE].status == OK
        assert controller.primitives[ComponentId.TAG].verify() == Health.INSTALLED_HEALTHY


class TestInspect:
    def test_drift_details(self, controller: LifecycleController, adapters: AdapterRegistry, settings):
        """inspect reports what a drifted component is missing."""
        controller.install_all(start_loops=False)
        adapters.tasks.tasks.clear()

        inspection = controller.inspect()
        assert not inspection.healthy
        assert inspection.health[ComponentId.SERVICE] == Health.INSTALLED_DRIFTED
        assert inspection.drift[ComponentId.SERVICE].missing == [f"task:{settings.service.label}"]
        data = inspection.to_dict()
        assert data["components"]["tag"]["health"] == "installed_healthy"

    def test_unreadable_entries_are_not_fatal(self, controller: LifecycleController, settings):
        """Registry files that are not UTF-8 read as absent."""
        settings.registry_dir.mkdir(parents=True)
        (settings.registry_dir / "tag.json").write_bytes(b"\xff\xfe{garbage")
        (settings.registry_dir / "correlation_id").write_bytes(b"\xff\xfe\xfd")

        assert controller.status()[ComponentId.TAG] == Health.NOT_INSTALLED
        report = controller.install_all(start_loops=False)
        assert report.status == "ok"
        assert report.correlation_id == controller.ctx.registry.correlation_id()


class TestAudit:
    def test_every_operation_audited(self, controller: LifecycleController):
        """Each operation writes one audit entry."""
        install = controller.install_all(start_loops=False)
        controller.reassert()
        controller.rollback_all()

        entries = controller.audit.read_all()
        assert [e.operation_type for e in entries] == ["install", "reassert", "rollback"]
        assert entries[0].operation_id == install.operation_id
        assert entries[0].components_succeeded == 4
        assert entries[0].correlation_id == install.correlation_id

    def test_failures_audited(self, controller: LifecycleController, adapters: AdapterRegistry):
        """Failed components are recorded in the audit entry."""
        adapters.tags.set_failure("set_tag", "read-only")
        controller.install_all(start_loops=False)
        entry = controller.audit.read_all()[-1]
        assert entry.status == "partial"
        assert entry.components_failed == 1
        assert any("could not tag" in e for e in entry.errors)

    def test_operation_id_format(self):
        """Operation ids follow the op-date-time-hex layout."""
        op_id = generate_operation_id()
        assert op_id.startswith("op-")
        assert len(op_id.split("-")) == 4


class TestRunLoops:
    def test_hosts_loops_until_stopped(self, controller: LifecycleController, adapters: AdapterRegistry, wait_for):
        """run_loops hosts the loops until the event is set."""
        controller.install_all(start_loops=False)
        stop = threading.Event()
        result = []
        host = threading.Thread(target=lambda: result.extend(controller.run_loops(stop)))
        host.start()

        assert wait_for(lambda: len(adapters.logs.entries) >= 3)
        stop.set()
        host.join(timeout=5)

        assert not host.is_alive()
        assert result == [ComponentId.LOG_INJECTION, ComponentId.REPORT_FORGERY]
        for cid in result:
            assert controller.primitives[cid].loop is None

    def test_nothing_installed(self, controller: LifecycleController):
        """run_loops with nothing installed returns at once."""
        assert controller.run_loops(threading.Event()) == []


class TestDryRun:
    """Plans list per-component steps and change nothing."""

    def test_install_plan_mutates_nothing(self, controller: LifecycleController, adapters: AdapterRegistry, settings):
        """A planned install touches neither the host nor the state directory."""
        report = controller.install_all(dry_run=True)

        assert report.dry_run
        assert report.status == "ok"
        assert {o.status for o in report.outcomes.values()} == {PLANNED}
        tag_plan = report.outcomes[ComponentId.TAG].plan
        for location in settings.tag.locations:
            assert f"snapshot tag:{location}#{settings.tag.key}" in tag_plan
            assert f"set tag {settings.tag.key} on {location}" in tag_plan
        assert report.outcomes[ComponentId.LOG_INJECTION].plan[-1] == "start background loop"

        assert adapters.tags.calls("set_tag") == []
        assert adapters.tasks.calls("register_task") == []
        assert adapters.logs.entries == []
        assert not Path(settings.state_dir).exists()
        assert not Path(settings.log_injection.log_dir).exists()
        assert controller.audit.read_all() == []

    def test_plan_needs_no_privilege(self, settings, clock):
        """Dry runs skip the privilege check, like a read-only command."""
        adapters = AdapterRegistry.mock(privileged=False)
        controller = LifecycleController(build_context(settings, adapters, clock=clock))
        assert controller.install_all(dry_run=True).status == "ok"
        assert controller.rollback_all(dry_run=True).status == "ok"

    def test_healthy_install_plans_nothing(self, controller: LifecycleController):
        """Installing over a healthy installation has no steps."""
        controller.install_all(start_loops=False)
        report = controller.install_all(start_loops=False, dry_run=True)
        assert {o.status for o in report.outcomes.values()} == {SKIPPED}
        assert all(o.plan == [] for o in report.outcomes.values())

    def test_drift_planned_as_repair(self, controller: LifecycleController, adapters: AdapterRegistry, settings):
        """A drifted component is planned as a repair, not a fresh install."""
        controller.install_all(start_loops=False)
        adapters.tags.tags.clear()

        report = controller.install_all(start_loops=False, dry_run=True)
        assert report.outcomes[ComponentId.TAG].plan == [
            f"repair tag:{location}#{settings.tag.key}" for location in settings.tag.locations
        ]
        assert adapters.tags.tags == {}

    def test_rollback_plan(self, controller: LifecycleController, settings):
        """A planned rollback lists undo and restore steps in reverse order."""
        controller.install_all(start_loops=False)
        report = controller.rollback_all(dry_run=True)

        assert list(report.outcomes) == list(reversed(INSTALL_ORDER))
        assert report.outcomes[ComponentId.SERVICE].plan == [
            f"unregister task {settings.service.label}",
            "clear record",
        ]
        tag_plan = report.outcomes[ComponentId.TAG].plan
        assert any(step.startswith(f"restore file:{settings.tag.identity_marker}") for step in tag_plan)
        assert tag_plan[-1] == "clear record"
        assert set(controller.status().values()) == {Health.INSTALLED_HEALTHY}
        assert [e.operation_type for e in controller.audit.read_all()] == ["install"]

    def test_cleanup_plan(self, controller: LifecycleController, ctx: PrimitiveContext):
        """A planned cleanup names the snapshot it would discard."""
        installed = controller.install_all(start_loops=False)
        report = controller.cleanup_all(dry_run=True)

        for cid in INSTALL_ORDER:
            ref = installed.outcomes[cid].record.backup_ref
            assert f"discard snapshot {ref}" in report.outcomes[cid].plan
        assert len(ctx.backup.list_snapshots()) == 4


class TestComponentSubset:
    """Operations narrowed to some of the footprints."""

    def test_install_subset(self, controller: LifecycleController, ctx: PrimitiveContext):
        """Only the selected components are snapshotted and installed."""
        report = controller.install_all(start_loops=False, components=[ComponentId.SERVICE, "tag"])

        assert list(report.outcomes) == [ComponentId.TAG, ComponentId.SERVICE]
        assert len(ctx.backup.list_snapshots()) == 2
        assert controller.status() == {
            ComponentId.TAG: Health.INSTALLED_HEALTHY,
            ComponentId.SERVICE: Health.INSTALLED_HEALTHY,
            ComponentId.LOG_INJECTION: Health.NOT_INSTALLED,
            ComponentId.REPORT_FORGERY: Health.NOT_INSTALLED,
        }

    def test_rollback_subset_keeps_reverse_order(self, controller: LifecycleController):
        """A partial rollback still runs in reverse install order."""
        controller.install_all(start_loops=False)
        report = controller.rollback_all(components=["tag", "report_forgery"])

        assert report.status == "ok"
        assert list(report.outcomes) == [ComponentId.REPORT_FORGERY, ComponentId.TAG]
        health = controller.status()
        assert health[ComponentId.TAG] == Health.NOT_INSTALLED
        assert health[ComponentId.REPORT_FORGERY] == Health.NOT_INSTALLED
        assert health[ComponentId.SERVICE] == Health.INSTALLED_HEALTHY
        assert health[ComponentId.LOG_INJECTION] == Health.INSTALLED_HEALTHY

    def test_partial_cleanup_keeps_correlation_id(self, controller: LifecycleController, ctx: PrimitiveContext):
        """The correlation id is only forgotten once no component is left."""
        controller.install_all(start_loops=False)
        assert controller.cleanup_all(components=["service"]).status == "ok"
        assert ctx.registry.correlation_id() is not None

        assert controller.cleanup_all().status == "ok"
        assert ctx.registry.correlation_id() is None

    def test_status_subset(self, controller: LifecycleController):
        """Status can be asked for a single component."""
        assert controller.status(["log_injection"]) == {ComponentId.LOG_INJECTION: Health.NOT_INSTALLED}
        assert list(controller.inspect([ComponentId.SERVICE]).health) == [ComponentId.SERVICE]

    def test_unknown_component(self, controller: LifecycleController):
        """An unknown component name is rejected."""
        with pytest.raises(ValueError):
            controller.status(["printer"])
