"""
Config check use case — validate footprints.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from footprints.core.config.loader import ConfigError, find_config_file, load_settings
from footprints.core.models.settings import Settings

SYSLOG_LEVELS = {"debug", "info", "notice", "warning", "error", "err", "crit", "alert", "emerg"}


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    settings: Settings | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "settings": self.settings.model_dump(mode="json") if self.settings else None,
        }


def _inside(child: Path, parent: Path) -> bool:
    return child == parent or parent in child.parents


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate configuration and report issues.

    A missing config file is not an error: the defaults apply.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    result.config_path = config_path
    if config_path is None:
        result.warnings.append("No footprints.yml found, using built-in defaults.")

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.settings = settings

    # Semantic checks
    if not settings.tag.locations:
        result.warnings.append("tag.locations is empty: the tag footprint marks nothing.")

    if settings.log_injection.level.lower() not in SYSLOG_LEVELS:
        result.errors.append(f"log_injection.level '{settings.log_injection.level}' is not a syslog level.")

    if "." not in settings.service.label:
        result.warnings.append(f"service.label '{settings.service.label}' is not reverse-DNS.")

    backup_dir = Path(settings.backup_dir)
    for name, path in (
        ("log_injection.log_dir", settings.log_injection.log_dir),
        ("report_forgery.report_dir", settings.report_forgery.report_dir),
    ):
        if _inside(backup_dir, Path(path)):
            result.errors.append(f"backup_dir lies inside {name}: a restore would delete the snapshots.")

    for name in ("state_dir", "backup_dir"):
        if not Path(getattr(settings, name)).is_absolute():
            result.warnings.append(f"{name} is relative; it resolves against the working directory.")

    result.valid = len(result.errors) == 0
    return result
