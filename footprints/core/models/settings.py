"""
Settings model — loaded from footprints.yml.

Defaults describe a macOS host. Every path is overridable so the whole
suite can be pointed at a scratch directory (tests do exactly that).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TagSettings(_Section):
    """Metadata tag footprint."""

    locations: list[str] = Field(
        default_factory=lambda: [
            "/Library/Application Support",
            "/usr/local",
            "/opt",
        ]
    )
    key: str = "io.footprints.signature"
    identity_marker: str = "/Library/Preferences/.footprints_identity"


class ServiceSettings(_Section):
    """Periodic service registration footprint."""

    label: str = "io.footprints.agent"
    start_interval: int = Field(default=300, ge=10)
    descriptor_dir: str = "/Library/LaunchDaemons"
    stdout_path: str = "/var/log/footprints_agent.out"
    stderr_path: str = "/var/log/footprints_agent.err"


class LogInjectionSettings(_Section):
    """Structured log emission footprint."""

    tag: str = "footprints"
    level: str = "info"
    log_dir: str = "/var/log/footprints"
    min_interval: float = Field(default=30.0, gt=0)
    max_interval: float = Field(default=90.0, gt=0)

    @model_validator(mode="after")
    def _check_interval(self) -> LogInjectionSettings:
        if self.max_interval < self.min_interval:
            raise ValueError("max_interval must be >= min_interval")
        return self


class ReportForgerySettings(_Section):
    """Synthetic diagnostic report footprint."""

    report_dir: str = "/Library/Logs/DiagnosticReports"
    extension: str = "crash"
    min_interval: float = Field(default=1800.0, gt=0)
    max_interval: float = Field(default=5400.0, gt=0)
    window_seconds: int = Field(default=86400, gt=0)

    @model_validator(mode="after")
    def _check_interval(self) -> ReportForgerySettings:
        if self.max_interval < self.min_interval:
            raise ValueError("max_interval must be >= min_interval")
        return self


class Settings(_Section):
    """Root configuration."""

    version: int = 1

    state_dir: str = "/var/db/footprints"
    backup_dir: str = "/var/db/footprints/backups"
    require_privilege: bool = True
    stop_grace_seconds: float = Field(default=5.0, ge=0)

    tag: TagSettings = Field(default_factory=TagSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    log_injection: LogInjectionSettings = Field(default_factory=LogInjectionSettings)
    report_forgery: ReportForgerySettings = Field(default_factory=ReportForgerySettings)

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir)

    @property
    def registry_dir(self) -> Path:
        return self.state_path / "registry"

    @property
    def loops_dir(self) -> Path:
        """Pid files of running background loops."""
        return self.state_path / "loops"

    @property
    def audit_path(self) -> Path:
        return self.state_path / "audit.ndjson"

    @property
    def mock_dir(self) -> Path:
        """Tags and tasks of the ``--mock`` adapters."""
        return self.state_path / "mock"
