"""
Report forgery footprint — synthetic crash reports written next to real
ones, one after each bounded random delay.

Every report carries the installation's correlation id as its anonymous
id. Rollback and cleanup remove exactly the reports that carry it and
leave reports written by the real diagnostic subsystem alone.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from footprints.core.models.record import ComponentId, PersistenceRecord
from footprints.core.models.report import HostEnvironment
from footprints.core.models.snapshot import ResourceLocator
from footprints.core.persistence.state_file import atomic_write_text
from footprints.core.primitives.base import Installation, PersistencePrimitive
from footprints.core.services.reports import ReportValidationError, check_document, generate, render_report

logger = logging.getLogger(__name__)

REPORTS_MARKER = ".footprints_reports"


class ReportForgeryPrimitive(PersistencePrimitive):
    component_id = ComponentId.REPORT_FORGERY
    has_loop = True

    @property
    def report_dir(self) -> Path:
        return Path(self.settings.report_forgery.report_dir)

    @property
    def marker(self) -> Path:
        return self.report_dir / REPORTS_MARKER

    def backup_selector(self) -> list[ResourceLocator]:
        # A missing directory is captured as absent so restore removes it;
        # an existing one holds reports we must not touch.
        if not self.report_dir.exists():
            return [ResourceLocator.file(str(self.report_dir))]
        return [ResourceLocator.file(str(self.marker))]

    def _loop_bounds(self) -> tuple[float, float]:
        cfg = self.settings.report_forgery
        return cfg.min_interval, cfg.max_interval

    # ── Reports ──────────────────────────────────────────────────

    def _host(self) -> HostEnvironment:
        host = self.ctx.host or HostEnvironment()
        now = self.ctx.clock.timestamp()
        return host.model_copy(update={"captured_at": now, "boot_time": min(host.boot_time, now)})

    def write_report(self, correlation_id: str) -> Path:
        """Generate, check and write one report. Returns its path.

        Raises:
            ApplyError: The report did not pass its own reader, e.g. a
                host value that breaks the header layout.
        """
        cfg = self.settings.report_forgery
        try:
            report = generate(
                host=self._host(),
                rng=self.ctx.rng,
                incident_id=correlation_id,
                window_seconds=cfg.window_seconds,
            )
            text = render_report(report)
            check_document(text)
        except ReportValidationError as e:
            raise self._fail(f"generated report rejected: {e}") from e

        stamp = self.ctx.clock.now().strftime("%Y-%m-%d-%H%M%S")
        name = f"{report.process_name}_{stamp}_{self.ctx.rng.getrandbits(16):04x}.{cfg.extension}"
        path = self.report_dir / name
        atomic_write_text(path, text, prefix=".report_", mode=0o644)
        logger.debug("Wrote report %s", name)
        return path

    def reports(self, correlation_id: str) -> list[Path]:
        """Reports in the directory that carry *correlation_id*."""
        if not self.report_dir.is_dir():
            return []
        out = []
        for path in sorted(self.report_dir.glob(f"*.{self.settings.report_forgery.extension}")):
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue
            if correlation_id in text:
                out.append(path)
        return out

    def _write_marker(self, correlation_id: str, written: int) -> None:
        atomic_write_text(
            self.marker,
            f"CORRELATION_ID={correlation_id}\n"
            f"LAST_REPORT={self.ctx.clock.iso()}\n"
            f"REPORT_COUNT={written}\n",
            prefix=".marker_",
            mode=0o644,
        )

    # ── Lifecycle hooks ──────────────────────────────────────────

    def _install(self, correlation_id: str, previous: PersistenceRecord | None) -> Installation:
        created_dir = not self.report_dir.exists()
        if previous is not None and "created_dir" in previous.details:
            created_dir = bool(previous.details["created_dir"])
        self.report_dir.mkdir(parents=True, exist_ok=True)

        path = self.write_report(correlation_id)
        written = int(previous.details.get("written", 0)) + 1 if previous else 1
        self._write_marker(correlation_id, written)
        logger.info("Report forgery started in %s", self.report_dir)
        return Installation(
            artifacts=[str(self.marker), str(path)],
            details={"written": written, "last_report": path.name, "created_dir": created_dir},
        )

    def _loop_iteration(self, record: PersistenceRecord) -> dict[str, Any]:
        path = self.write_report(record.correlation_id)
        written = int(record.details.get("written", 0)) + 1
        self._write_marker(record.correlation_id, written)
        return {"written": written, "last_report": path.name}

    def _missing(self, record: PersistenceRecord) -> list[str]:
        missing = []
        try:
            marker_ok = record.correlation_id in self.marker.read_text(encoding="utf-8")
        except OSError:
            marker_ok = False
        if not marker_ok:
            missing.append(str(ResourceLocator.file(str(self.marker))))
        if not self.reports(record.correlation_id):
            missing.append(f"reports:{self.report_dir}")
        return missing

    def _delete_reports(self, correlation_id: str | None) -> list[str]:
        if not correlation_id:
            return []
        failed = []
        for path in self.reports(correlation_id):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)
                failed.append(str(path))
        return failed

    def _describe_install(self) -> list[str]:
        return [f"write one report to {self.report_dir}", f"write marker {self.marker}"]

    def _describe_undo(self, record: PersistenceRecord) -> list[str]:
        return [f"delete {path}" for path in self.reports(record.correlation_id)]

    def _describe_removal(self, record: PersistenceRecord | None) -> list[str]:
        correlation_id = record.correlation_id if record else self.ctx.registry.correlation_id()
        reports = self.reports(correlation_id) if correlation_id else []
        return [f"delete {path}" for path in reports] + [f"remove {self.marker}"]

    def _undo(self, record: PersistenceRecord) -> list[str]:
        return self._delete_reports(record.correlation_id)

    def _remove_artifacts(self, correlation_id: str | None, record: PersistenceRecord | None) -> list[str]:
        failed = self._delete_reports(correlation_id)
        try:
            self.marker.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", self.marker, e)
            failed.append(str(self.marker))
        created_dir = bool(record and record.details.get("created_dir"))
        if created_dir and self.report_dir.is_dir() and not any(self.report_dir.iterdir()):
            try:
                self.report_dir.rmdir()
            except OSError as e:
                logger.warning("Could not remove %s: %s", self.report_dir, e)
                failed.append(str(self.report_dir))
        return failed
