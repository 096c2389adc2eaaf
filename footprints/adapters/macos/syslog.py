"""
System log adapter (``logger``).
"""

from __future__ import annotations

from footprints.adapters.base import LogAdapter
from footprints.adapters.shell.command import CommandRunner
from footprints.core.models.receipt import Receipt

_LEVELS = {"debug", "info", "notice", "warning", "err", "crit", "alert", "emerg"}


class SyslogAdapter(LogAdapter):
    """Entries sent to the unified log through ``logger -p user.<level>``."""

    def __init__(self, runner: CommandRunner | None = None):
        self._runner = runner or CommandRunner(adapter=self.name)

    @property
    def name(self) -> str:
        return "syslog"

    def is_available(self) -> bool:
        return CommandRunner.available("logger")

    def emit(self, tag: str, level: str, message: str) -> Receipt:
        level = level.lower()
        if level == "error":
            level = "err"
        if level not in _LEVELS:
            return Receipt.failure(adapter=self.name, operation="emit", error=f"Unknown syslog level '{level}'")
        return self._runner.run("emit", ["logger", "-p", f"user.{level}", "-t", tag, message])
