"""
Backup snapshot models.

A snapshot is captured immediately before a primitive mutates the host
and is never modified afterwards (the models are frozen). Restores read
it; only an explicit cleanup discards it.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from footprints.core.models.record import ComponentId


class ResourceLocator(BaseModel):
    """One OS-state fragment: a file/directory, or a tag on a path."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file", "tag"] = "file"
    target: str
    key: str = ""           # tag name (kind='tag' only)

    @classmethod
    def file(cls, path: str) -> ResourceLocator:
        return cls(kind="file", target=path)

    @classmethod
    def tag(cls, path: str, key: str) -> ResourceLocator:
        return cls(kind="tag", target=path, key=key)

    def __str__(self) -> str:
        if self.kind == "tag":
            return f"tag:{self.target}#{self.key}"
        return f"file:{self.target}"


class SnapshotEntry(BaseModel):
    """Captured pre-mutation state of one resource."""

    model_config = ConfigDict(frozen=True)

    locator: ResourceLocator
    existed: bool
    is_dir: bool = False
    digest: str = ""            # sha256 of file content / directory tree
    payload: str | None = None  # name of the stored copy inside the snapshot dir
    value: str | None = None    # previous tag value


class BackupSnapshot(BaseModel):
    """Immutable pre-install state for one component."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    component_id: ComponentId
    captured_at: str
    entries: tuple[SnapshotEntry, ...] = Field(default_factory=tuple)
    failed: tuple[str, ...] = Field(default_factory=tuple)  # locators not captured

    @property
    def complete(self) -> bool:
        """Whether every selected resource was captured."""
        return not self.failed
