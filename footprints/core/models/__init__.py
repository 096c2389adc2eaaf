"""
Domain models — Pydantic types for footprints.

All models are re-exported here for convenient access:

    from footprints.core.models import PersistenceRecord, BackupSnapshot, SyntheticReport
"""

from footprints.core.models.receipt import Receipt
from footprints.core.models.record import (
    INSTALL_ORDER,
    ComponentId,
    Health,
    PersistenceRecord,
    RecordStatus,
)
from footprints.core.models.report import (
    BinaryImage,
    HostEnvironment,
    StackFrame,
    SyntheticReport,
)
from footprints.core.models.settings import (
    LogInjectionSettings,
    ReportForgerySettings,
    ServiceSettings,
    Settings,
    TagSettings,
)
from footprints.core.models.snapshot import BackupSnapshot, ResourceLocator, SnapshotEntry
from footprints.core.models.task import TaskDescriptor

__all__ = [
    "BackupSnapshot",
    "BinaryImage",
    "ComponentId",
    "Health",
    "HostEnvironment",
    "INSTALL_ORDER",
    "LogInjectionSettings",
    "PersistenceRecord",
    "Receipt",
    "RecordStatus",
    "ReportForgerySettings",
    "ResourceLocator",
    "ServiceSettings",
    "Settings",
    "SnapshotEntry",
    "StackFrame",
    "SyntheticReport",
    "TagSettings",
    "TaskDescriptor",
]
