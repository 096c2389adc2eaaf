"""
Tests for the four persistence primitives and their shared lifecycle.
"""

import os
from pathlib import Path

import pytest

from footprints.adapters.registry import AdapterRegistry
from footprints.core.errors import ApplyError, CleanupError, DriftError, RollbackError, RollbackKind
from footprints.core.models.record import ComponentId, Health, RecordStatus
from footprints.core.models.report import HostEnvironment
from footprints.core.primitives import (
    LogInjectionPrimitive,
    PrimitiveContext,
    ReportForgeryPrimitive,
    ServicePrimitive,
    TagPrimitive,
    build_primitives,
)
from footprints.core.primitives.service import CORRELATION_ENV
from footprints.core.services.reports import check_document


def _host_mutations(adapters: AdapterRegistry) -> int:
    """Number of mutating capability calls made so far."""
    return (
        len(adapters.tags.calls("set_tag"))
        + len(adapters.tags.calls("clear_tag"))
        + len(adapters.tasks.calls("register_task"))
        + len(adapters.tasks.calls("unregister_task"))
        + len(adapters.logs.calls("emit"))
    )


def _files(root: Path) -> dict[str, bytes]:
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }


class TestApply:
    """Install and idempotence."""

    @pytest.mark.parametrize("cid", list(ComponentId))
    def test_apply_twice_is_noop(self, ctx: PrimitiveContext, adapters: AdapterRegistry, host_root: Path, cid):
        """A second apply changes nothing on the host."""
        primitive = build_primitives(ctx)[cid]
        first = primitive.apply()
        mutations = _host_mutations(adapters)
        files = _files(host_root)

        second = primitive.apply()
        assert second == first
        assert _host_mutations(adapters) == mutations
        assert _files(host_root) == files
        assert primitive.verify() == Health.INSTALLED_HEALTHY

    @pytest.mark.parametrize("cid", list(ComponentId))
    def test_record_points_at_snapshot(self, ctx: PrimitiveContext, cid):
        """The record points at a readable snapshot."""
        primitive = build_primitives(ctx)[cid]
        record = primitive.apply()
        assert record.status == RecordStatus.INSTALLED
        assert ctx.backup.load(record.backup_ref) is not None
        assert record.correlation_id == ctx.registry.correlation_id()

    def test_shared_correlation_id(self, ctx: PrimitiveContext):
        """Every primitive shares one correlation id."""
        records = [p.apply() for p in build_primitives(ctx).values()]
        assert len({r.correlation_id for r in records}) == 1

    def test_failed_apply_leaves_failed_record(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """A failed apply leaves a failed record and its snapshot."""
        adapters.tags.set_failure("set_tag", "read-only filesystem")
        primitive = TagPrimitive(ctx)
        with pytest.raises(ApplyError, match="could not tag"):
            primitive.apply()

        record = primitive.record()
        assert record.status == RecordStatus.FAILED
        assert ctx.backup.load(record.backup_ref) is not None
        assert primitive.verify() == Health.INSTALLED_DRIFTED

    def test_retry_after_failure_reuses_snapshot(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """Retrying after a failure reuses the first snapshot."""
        adapters.tags.set_failure("set_tag")
        primitive = TagPrimitive(ctx)
        with pytest.raises(ApplyError):
            primitive.apply()
        failed_ref = primitive.record().backup_ref

        adapters.tags.clear_failure()
        record = primitive.apply()
        assert record.status == RecordStatus.INSTALLED
        assert record.backup_ref == failed_ref
        assert len(ctx.backup.list_snapshots()) == 1

    def test_rejected_report_is_apply_error(self, ctx: PrimitiveContext):
        """A report the reader rejects is an apply error."""
        ctx.host = HostEnvironment(os_version="14.4.1 beta")
        primitive = ReportForgeryPrimitive(ctx)
        with pytest.raises(ApplyError, match="generated report rejected"):
            primitive.apply()

        assert primitive.record().status == RecordStatus.FAILED
        assert primitive.reports(ctx.registry.correlation_id()) == []


class TestDrift:
    """Verification and repair."""

    def test_not_installed(self, ctx: PrimitiveContext):
        """Nothing installed means no drift."""
        for primitive in build_primitives(ctx).values():
            assert primitive.verify() == Health.NOT_INSTALLED
            assert primitive.drift() == []

    def test_tag_removed_then_repaired(self, ctx: PrimitiveContext, adapters: AdapterRegistry, settings):
        """A removed tag is drift and apply repairs it."""
        primitive = TagPrimitive(ctx)
        primitive.apply()
        location = settings.tag.locations[0]
        del adapters.tags.tags[(location, settings.tag.key)]

        assert primitive.verify() == Health.INSTALLED_DRIFTED
        with pytest.raises(DriftError) as exc_info:
            primitive.check()
        assert exc_info.value.missing == [f"tag:{location}#{settings.tag.key}"]

        record = primitive.apply()
        assert record.details["repairs"] == 1
        assert primitive.verify() == Health.INSTALLED_HEALTHY

    def test_marker_deleted(self, ctx: PrimitiveContext):
        """A deleted identity marker is drift."""
        primitive = TagPrimitive(ctx)
        primitive.apply()
        primitive.marker.unlink()
        assert primitive.verify() == Health.INSTALLED_DRIFTED
        primitive.apply()
        assert primitive.marker.is_file()

    def test_task_unregistered_externally(self, ctx: PrimitiveContext, adapters: AdapterRegistry, settings):
        """A task removed outside the tool is drift."""
        primitive = ServicePrimitive(ctx)
        primitive.apply()
        adapters.tasks.tasks.pop(settings.service.label)
        assert primitive.drift() == [f"task:{settings.service.label}"]
        primitive.apply()
        assert primitive.verify() == Health.INSTALLED_HEALTHY

    def test_log_marker_deleted(self, ctx: PrimitiveContext):
        """A deleted presence marker is drift."""
        primitive = LogInjectionPrimitive(ctx)
        primitive.apply()
        primitive.marker.unlink()
        assert primitive.verify() == Health.INSTALLED_DRIFTED
        record = primitive.apply()
        assert record.details["seq"] == 2

    def test_reports_deleted(self, ctx: PrimitiveContext):
        """Deleted reports are drift."""
        primitive = ReportForgeryPrimitive(ctx)
        record = primitive.apply()
        for path in primitive.reports(record.correlation_id):
            path.unlink()
        assert primitive.verify() == Health.INSTALLED_DRIFTED
        primitive.apply()
        assert len(primitive.reports(record.correlation_id)) == 1


class TestRollback:
    """Rollback restores the pre-install state."""

    def test_tag_restores_previous_values(self, ctx: PrimitiveContext, adapters: AdapterRegistry, settings):
        """Rollback gives tags their previous values."""
        key = settings.tag.key
        first, second = settings.tag.locations
        adapters.tags.tags[(first, key)] = "pre-existing"
        primitive = TagPrimitive(ctx)
        primitive.apply()

        record = primitive.rollback()
        assert record.status == RecordStatus.ROLLED_BACK
        assert adapters.tags.tags == {(first, key): "pre-existing"}
        assert not primitive.marker.exists()
        assert primitive.record() is None
        assert primitive.verify() == Health.NOT_INSTALLED

    def test_existing_marker_restored(self, ctx: PrimitiveContext):
        """A marker that existed before install is restored."""
        primitive = TagPrimitive(ctx)
        primitive.marker.parent.mkdir(parents=True)
        primitive.marker.write_text("OLD\n")
        primitive.apply()
        assert "OLD" not in primitive.marker.read_text()
        primitive.rollback()
        assert primitive.marker.read_text() == "OLD\n"

    def test_service_unregistered(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """Rollback unregisters the task."""
        primitive = ServicePrimitive(ctx)
        primitive.apply()
        primitive.rollback()
        assert adapters.tasks.tasks == {}

    def test_log_dir_removed(self, ctx: PrimitiveContext):
        """Rollback removes a log directory it created."""
        primitive = LogInjectionPrimitive(ctx)
        primitive.apply()
        assert primitive.log_dir.is_dir()
        primitive.rollback()
        assert not primitive.log_dir.exists()

    def test_genuine_reports_kept(self, ctx: PrimitiveContext):
        """Reports without the correlation id are kept."""
        primitive = ReportForgeryPrimitive(ctx)
        primitive.report_dir.mkdir(parents=True)
        genuine = primitive.report_dir / "Safari_2024-01-01-100000_host.crash"
        genuine.write_text("a real report\n")

        record = primitive.apply()
        assert len(primitive.reports(record.correlation_id)) == 1
        primitive.rollback()

        assert [p.name for p in primitive.report_dir.iterdir()] == [genuine.name]
        assert genuine.read_text() == "a real report\n"

    def test_created_report_dir_removed(self, ctx: PrimitiveContext):
        """A report directory created by install is removed."""
        primitive = ReportForgeryPrimitive(ctx)
        primitive.apply()
        primitive.rollback()
        assert not primitive.report_dir.exists()

    def test_rollback_without_record(self, ctx: PrimitiveContext):
        """Rollback without a record does nothing."""
        assert TagPrimitive(ctx).rollback() is None

    def test_restore_failure_keeps_failed_record(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """A restore failure keeps a failed record."""
        primitive = TagPrimitive(ctx)
        primitive.apply()
        adapters.tags.set_failure("clear_tag")

        with pytest.raises(RollbackError) as exc_info:
            primitive.rollback()
        assert exc_info.value.kinds == [RollbackKind.RESTORE_FAILED]
        assert len(exc_info.value.failed) == 2

        record = primitive.record()
        assert record.status == RecordStatus.FAILED
        assert record.details["rollback_errors"]

        adapters.tags.clear_failure()
        primitive.rollback()
        assert primitive.record() is None
        assert adapters.tags.tags == {}

    def test_undo_failure(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """An undo failure raises RollbackError."""
        primitive = ServicePrimitive(ctx)
        primitive.apply()
        adapters.tasks.set_failure("unregister_task")
        with pytest.raises(RollbackError) as exc_info:
            primitive.rollback()
        assert RollbackKind.UNDO_FAILED in exc_info.value.kinds
        assert primitive.record().status == RecordStatus.FAILED

    def test_missing_snapshot(self, ctx: PrimitiveContext):
        """A missing snapshot fails the restore."""
        primitive = TagPrimitive(ctx)
        record = primitive.apply()
        ctx.backup.discard(record.backup_ref)
        with pytest.raises(RollbackError) as exc_info:
            primitive.rollback()
        assert exc_info.value.kinds == [RollbackKind.RESTORE_FAILED]

    def test_unconfirmed_stop_still_clears_record(self, ctx: PrimitiveContext, settings):
        """An unconfirmed loop stop still clears the record."""
        settings.stop_grace_seconds = 0.1
        primitive = LogInjectionPrimitive(ctx)
        primitive.apply()
        primitive.pid_path.parent.mkdir(parents=True, exist_ok=True)
        primitive.pid_path.write_text(f"{os.getpid()}\n")

        with pytest.raises(RollbackError) as exc_info:
            primitive.rollback()
        assert exc_info.value.partial_stop
        assert exc_info.value.kinds == [RollbackKind.PARTIAL_STOP]
        assert primitive.record() is None
        assert not primitive.log_dir.exists()


class TestLoops:
    """Background loops of the log and report footprints."""

    def test_loop_requires_install(self, ctx: PrimitiveContext):
        """A loop only starts for an installed footprint."""
        primitive = LogInjectionPrimitive(ctx)
        assert primitive.start_loop() is False
        assert primitive.loop is None

    def test_one_shot_footprints_have_no_loop(self, ctx: PrimitiveContext):
        """Tag and service have no loop."""
        primitive = TagPrimitive(ctx)
        primitive.apply()
        assert primitive.start_loop() is False
        assert primitive.stop_loop() is True

    def test_log_loop_emits(self, ctx: PrimitiveContext, adapters: AdapterRegistry, wait_for):
        """The log loop keeps emitting entries."""
        primitive = LogInjectionPrimitive(ctx)
        record = primitive.apply()
        assert primitive.start_loop()
        try:
            assert wait_for(lambda: primitive.record().details["emitted"] >= 3)
        finally:
            assert primitive.stop_loop()

        details = primitive.record().details
        lines = primitive.daily_log().read_text().splitlines()
        assert len(lines) == details["emitted"]
        assert all(f"[ID: {record.correlation_id}]" in line for line in lines)
        assert [int(line.split("seq=")[1].split()[0]) for line in lines] == list(range(1, len(lines) + 1))
        assert len(adapters.logs.entries) == details["emitted"]

    def test_report_loop_writes_valid_reports(self, ctx: PrimitiveContext, wait_for):
        """The report loop writes reports that pass the reader."""
        primitive = ReportForgeryPrimitive(ctx)
        record = primitive.apply()
        assert primitive.start_loop()
        try:
            assert wait_for(lambda: primitive.record().details["written"] >= 3)
        finally:
            assert primitive.stop_loop()

        reports = primitive.reports(record.correlation_id)
        assert reports
        for path in reports:
            assert check_document(path.read_text()).incident_id == record.correlation_id

    def test_rollback_stops_loop_before_restore(self, ctx: PrimitiveContext, adapters: AdapterRegistry, wait_for, monkeypatch):
        """Rollback stops the loop before restoring."""
        primitive = LogInjectionPrimitive(ctx)
        primitive.apply()
        primitive.start_loop()
        assert wait_for(lambda: primitive.record().details["emitted"] >= 2)
        thread = primitive.loop._thread

        seen = []
        restore = ctx.backup.restore

        def spy(snapshot):
            seen.append(thread.is_alive())
            return restore(snapshot)

        monkeypatch.setattr(ctx.backup, "restore", spy)
        primitive.rollback()

        assert seen == [False]
        emitted = len(adapters.logs.entries)
        assert not wait_for(lambda: len(adapters.logs.entries) > emitted, timeout=0.1)
        assert not primitive.log_dir.exists()
        assert not primitive.pid_path.exists()

    def test_loop_does_not_recreate_record(self, ctx: PrimitiveContext):
        """A loop does not bring back a cleared record."""
        primitive = LogInjectionPrimitive(ctx)
        primitive.apply()
        ctx.registry.delete(primitive.component_id)
        primitive._tick()
        assert primitive.record() is None


class TestCleanup:
    def test_cleanup_removes_everything(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """Cleanup removes every artifact and the snapshot."""
        for primitive in build_primitives(ctx).values():
            record = primitive.apply()
            primitive.cleanup()
            assert primitive.record() is None
            assert ctx.backup.load(record.backup_ref) is None
            assert primitive.verify() == Health.NOT_INSTALLED
        assert adapters.tags.tags == {}
        assert adapters.tasks.tasks == {}

    def test_cleanup_keeps_genuine_reports(self, ctx: PrimitiveContext):
        """Cleanup leaves genuine reports alone."""
        primitive = ReportForgeryPrimitive(ctx)
        primitive.report_dir.mkdir(parents=True)
        genuine = primitive.report_dir / "Mail_2024-01-01-100000_host.crash"
        genuine.write_text("real\n")
        primitive.apply()
        primitive.cleanup()
        assert [p.name for p in primitive.report_dir.iterdir()] == [genuine.name]

    def test_cleanup_failure(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """A cleanup failure keeps a failed record."""
        primitive = TagPrimitive(ctx)
        record = primitive.apply()
        adapters.tags.set_failure("clear_tag")
        with pytest.raises(CleanupError):
            primitive.cleanup()
        assert primitive.record().status == RecordStatus.FAILED
        assert ctx.backup.load(record.backup_ref) is not None


class TestServiceDescriptor:
    def test_descriptor(self, ctx: PrimitiveContext, settings):
        """The descriptor runs reassert with the correlation id."""
        descriptor = ServicePrimitive(ctx).descriptor("CORR")
        assert descriptor.label == settings.service.label
        assert descriptor.program_arguments[-1] == "reassert"
        assert descriptor.environment == {CORRELATION_ENV: "CORR"}
        assert descriptor.start_interval == settings.service.start_interval
        assert "--config" not in descriptor.program_arguments

    def test_descriptor_carries_config(self, ctx: PrimitiveContext, tmp_path: Path):
        """The descriptor passes the config path along."""
        ctx.config_path = tmp_path / "footprints.yml"
        args = ServicePrimitive(ctx).descriptor("CORR").program_arguments
        assert args[args.index("--config") + 1] == str(tmp_path / "footprints.yml")


class TestPlan:
    """Dry-run descriptions of each operation."""

    def test_first_install_lists_selector(self, ctx: PrimitiveContext, settings):
        """A first install plans the snapshot of every selected resource."""
        primitive = LogInjectionPrimitive(ctx)
        steps = primitive.plan("install")
        assert steps[0] == f"snapshot file:{settings.log_injection.log_dir}"
        assert f"create {settings.log_injection.log_dir}" in steps
        assert "start background loop" not in steps
        assert primitive.record() is None

    def test_retry_plans_snapshot_reuse(self, ctx: PrimitiveContext, adapters: AdapterRegistry):
        """After a failed apply the plan reuses the recorded snapshot."""
        adapters.tags.set_failure("set_tag")
        primitive = TagPrimitive(ctx)
        with pytest.raises(ApplyError):
            primitive.apply()
        assert primitive.plan("install")[0] == f"reuse snapshot {primitive.record().backup_ref}"

    def test_rollback_lists_reports(self, ctx: PrimitiveContext):
        """Rollback plans name the reports that would be deleted."""
        primitive = ReportForgeryPrimitive(ctx)
        record = primitive.apply()
        steps = primitive.plan("rollback")
        for path in primitive.reports(record.correlation_id):
            assert f"delete {path}" in steps
        assert steps[-1] == "clear record"

    def test_nothing_to_roll_back(self, ctx: PrimitiveContext):
        """Without a record a rollback has no steps."""
        assert ServicePrimitive(ctx).plan("rollback") == []

    def test_unknown_operation(self, ctx: PrimitiveContext):
        """Only install, rollback and cleanup have plans."""
        with pytest.raises(ValueError, match="Unknown operation"):
            TagPrimitive(ctx).plan("reassert")
