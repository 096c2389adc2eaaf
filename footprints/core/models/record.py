"""
PersistenceRecord — what the registry knows about one footprint.

One record per component. The record is the registry's claim that a
footprint is installed; ``verify()`` compares that claim with what is
actually on the host.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ComponentId(StrEnum):
    """The four footprint kinds, in install order."""

    TAG = "tag"
    SERVICE = "service"
    LOG_INJECTION = "log_injection"
    REPORT_FORGERY = "report_forgery"


INSTALL_ORDER: tuple[ComponentId, ...] = (
    ComponentId.TAG,
    ComponentId.SERVICE,
    ComponentId.LOG_INJECTION,
    ComponentId.REPORT_FORGERY,
)


class RecordStatus(StrEnum):
    """Lifecycle status stored on a record."""

    INSTALLED = "installed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class Health(StrEnum):
    """Result of comparing a record with the host."""

    INSTALLED_HEALTHY = "installed_healthy"
    INSTALLED_DRIFTED = "installed_drifted"
    NOT_INSTALLED = "not_installed"


class PersistenceRecord(BaseModel):
    """Registry entry for one installed (or half-installed) footprint."""

    component_id: ComponentId
    installed_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    correlation_id: str
    backup_ref: str | None = None
    status: RecordStatus = RecordStatus.INSTALLED

    artifacts: list[str] = Field(default_factory=list)   # paths this footprint created
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def active(self) -> bool:
        """Whether the record claims an installed footprint."""
        return self.status == RecordStatus.INSTALLED
