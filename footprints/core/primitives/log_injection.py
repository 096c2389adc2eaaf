"""
Log injection footprint — structured entries in the system log and a
private daily log file, emitted by a background loop.

Private files live in ``log_dir``::

    .footprints_presence          marker (correlation id, last activity)
    footprints_YYYYMMDD.log       one line per emitted entry

Each entry goes to the system log (``emit``) and is appended to the
day's file with a single ``O_APPEND`` write, so concurrent readers only
ever see whole lines.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from footprints.core.models.record import ComponentId, PersistenceRecord
from footprints.core.models.snapshot import ResourceLocator
from footprints.core.persistence.state_file import atomic_write_text
from footprints.core.primitives.base import Installation, PersistencePrimitive

logger = logging.getLogger(__name__)

PRESENCE_MARKER = ".footprints_presence"
LOG_PREFIX = "footprints_"

EVENTS = (
    "heartbeat",
    "integrity_check",
    "cache_refresh",
    "config_reload",
    "presence",
)


def append_line(path: Path, line: str) -> None:
    """Append one whole line with a single write."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    try:
        os.write(fd, (line.rstrip("\n") + "\n").encode("utf-8"))
    finally:
        os.close(fd)


class LogInjectionPrimitive(PersistencePrimitive):
    component_id = ComponentId.LOG_INJECTION
    has_loop = True

    @property
    def log_dir(self) -> Path:
        return Path(self.settings.log_injection.log_dir)

    @property
    def marker(self) -> Path:
        return self.log_dir / PRESENCE_MARKER

    def daily_log(self) -> Path:
        return self.log_dir / f"{LOG_PREFIX}{self.ctx.clock.now():%Y%m%d}.log"

    def backup_selector(self) -> list[ResourceLocator]:
        return [ResourceLocator.file(str(self.log_dir))]

    def _loop_bounds(self) -> tuple[float, float]:
        cfg = self.settings.log_injection
        return cfg.min_interval, cfg.max_interval

    # ── Emission ─────────────────────────────────────────────────

    def _write_marker(self, correlation_id: str, seq: int) -> None:
        atomic_write_text(
            self.marker,
            f"CORRELATION_ID={correlation_id}\n"
            f"LAST_ACTIVITY={self.ctx.clock.iso()}\n"
            f"SEQ={seq}\n",
            prefix=".presence_",
            mode=0o644,
        )

    def emit(self, correlation_id: str, seq: int) -> Path:
        """Emit entry *seq* to the system log and the daily file."""
        cfg = self.settings.log_injection
        event = self.ctx.rng.choice(EVENTS)
        message = f"seq={seq} correlation_id={correlation_id} event={event}"

        receipt = self.ctx.adapters.logs.emit(cfg.tag, cfg.level, message)
        if receipt.failed:
            raise self._fail(f"system log emit failed: {receipt.error}")

        path = self.daily_log()
        stamp = self.ctx.clock.now().strftime("%Y-%m-%d %H:%M:%S")
        append_line(path, f"[{stamp}] [{cfg.tag.upper()}] [ID: {correlation_id}] {message}")
        self._write_marker(correlation_id, seq)
        logger.debug("Emitted log entry seq=%d", seq)
        return path

    # ── Lifecycle hooks ──────────────────────────────────────────

    def _install(self, correlation_id: str, previous: PersistenceRecord | None) -> Installation:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        seq = int(previous.details.get("seq", 0)) + 1 if previous else 1
        path = self.emit(correlation_id, seq)
        emitted = int(previous.details.get("emitted", 0)) + 1 if previous else 1
        logger.info("Log injection started in %s", self.log_dir)
        return Installation(
            artifacts=[str(self.log_dir), str(self.marker)],
            details={
                "seq": seq,
                "emitted": emitted,
                "last_file": path.name,
                "last_activity": self.ctx.clock.iso(),
            },
        )

    def _loop_iteration(self, record: PersistenceRecord) -> dict[str, Any]:
        seq = int(record.details.get("seq", 0)) + 1
        path = self.emit(record.correlation_id, seq)
        return {
            "seq": seq,
            "emitted": int(record.details.get("emitted", 0)) + 1,
            "last_file": path.name,
            "last_activity": self.ctx.clock.iso(),
        }

    def log_files(self) -> list[Path]:
        if not self.log_dir.is_dir():
            return []
        return sorted(self.log_dir.glob(f"{LOG_PREFIX}*.log"))

    def _missing(self, record: PersistenceRecord) -> list[str]:
        missing = []
        try:
            marker_ok = record.correlation_id in self.marker.read_text(encoding="utf-8")
        except OSError:
            marker_ok = False
        if not marker_ok:
            missing.append(str(ResourceLocator.file(str(self.marker))))
        if not self.log_files():
            missing.append(str(ResourceLocator.file(str(self.log_dir / f"{LOG_PREFIX}*.log"))))
        return missing

    def _describe_install(self) -> list[str]:
        cfg = self.settings.log_injection
        return [
            f"create {self.log_dir}",
            f"emit first entry to the system log (tag {cfg.tag}) and {self.daily_log()}",
            f"write presence marker {self.marker}",
        ]

    def _describe_removal(self, record: PersistenceRecord | None) -> list[str]:
        return [f"remove {path}" for path in self.log_files()] + [f"remove {self.marker}"]

    def _remove_artifacts(self, correlation_id: str | None, record: PersistenceRecord | None) -> list[str]:
        failed = []
        for path in [*self.log_files(), self.marker]:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)
                failed.append(str(path))
        if self.log_dir.is_dir() and not any(self.log_dir.iterdir()):
            try:
                self.log_dir.rmdir()
            except OSError as e:
                logger.warning("Could not remove %s: %s", self.log_dir, e)
                failed.append(str(self.log_dir))
        return failed
