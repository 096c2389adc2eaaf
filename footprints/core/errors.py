"""
Error taxonomy.

Only ``PreconditionError`` (and ``ConfigError``, raised before anything
runs) reaches the caller of a controller operation. Everything else is
raised by a single primitive and captured into that operation's report.
"""

from __future__ import annotations

from enum import StrEnum


class FootprintsError(Exception):
    """Base class for all footprints errors."""

    kind: str = "error"


class PreconditionError(FootprintsError):
    """Not privileged, or a prerequisite is missing. Nothing was mutated."""

    kind = "precondition"


class ApplyError(FootprintsError):
    """A primitive could not mutate the host."""

    kind = "apply"

    def __init__(self, component: str, message: str):
        self.component = component
        super().__init__(f"{component}: {message}")


class PartialFailure(FootprintsError):
    """A snapshot or restore could not handle a subset of its resources."""

    kind = "partial_failure"

    def __init__(self, message: str, failed: list[str]):
        self.failed = list(failed)
        super().__init__(f"{message}: {', '.join(self.failed)}")


class RollbackKind(StrEnum):
    PARTIAL_STOP = "partial_stop"
    UNDO_FAILED = "undo_failed"
    RESTORE_FAILED = "restore_failed"


class RollbackError(FootprintsError):
    """Rollback ran to the end but could not do everything it should."""

    kind = "rollback"

    def __init__(
        self,
        component: str,
        kinds: list[RollbackKind],
        messages: list[str],
        failed: list[str] | None = None,
    ):
        self.component = component
        self.kinds = list(kinds)
        self.messages = list(messages)
        self.failed = list(failed or [])
        super().__init__(f"{component}: " + "; ".join(messages))

    @property
    def partial_stop(self) -> bool:
        return RollbackKind.PARTIAL_STOP in self.kinds


class CleanupError(FootprintsError):
    """Some artifacts could not be removed."""

    kind = "cleanup"

    def __init__(self, component: str, failed: list[str]):
        self.component = component
        self.failed = list(failed)
        super().__init__(f"{component}: could not remove {', '.join(self.failed)}")


class DriftError(FootprintsError):
    """The host no longer matches an installed record."""

    kind = "drift"

    def __init__(self, component: str, missing: list[str]):
        self.component = component
        self.missing = list(missing)
        super().__init__(f"{component}: drifted ({', '.join(self.missing)})")
