"""
Adapter base — the capability contracts between the core and the host.

The core only talks to the host through these protocols, never
directly to OS tools. Each capability is one opaque OS call with a
success/failure outcome; adapters never raise, failures are captured
in the Receipt.

To add a host:
    1. Subclass each capability
    2. Implement name, is_available and the operations
    3. Register the instances in an AdapterRegistry
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from footprints.core.models.receipt import Receipt
from footprints.core.models.task import TaskDescriptor


class Capability(ABC):
    """Common surface of every capability adapter."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'xattr', 'launchd', 'mock-tags')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying OS tool is available.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class TagAdapter(Capability):
    """Identity/metadata tags on filesystem locations."""

    @abstractmethod
    def set_tag(self, location: str, key: str, value: str) -> Receipt:
        """Write tag *key* = *value* on *location*."""

    @abstractmethod
    def read_tag(self, location: str, key: str) -> Receipt:
        """Read tag *key* on *location*.

        A missing tag is a success with ``metadata["present"] = False``;
        the value is in ``output`` when present.
        """

    @abstractmethod
    def clear_tag(self, location: str, key: str) -> Receipt:
        """Remove tag *key* from *location* (success if already absent)."""


class TaskAdapter(Capability):
    """Periodic task registration with the host's service manager."""

    @abstractmethod
    def register_task(self, descriptor: TaskDescriptor) -> Receipt:
        """Register (or re-register) a task."""

    @abstractmethod
    def unregister_task(self, label: str) -> Receipt:
        """Unregister a task (success if not registered)."""

    @abstractmethod
    def list_tasks(self) -> list[TaskDescriptor]:
        """Currently registered tasks."""

    def descriptor_path(self, label: str) -> str | None:
        """Where the task's descriptor lives on disk, if anywhere."""
        return None


class LogAdapter(Capability):
    """Structured entries into the system log stream."""

    @abstractmethod
    def emit(self, tag: str, level: str, message: str) -> Receipt:
        """Emit one log entry."""


class PrivilegeAdapter(Capability):
    """Privileged-execution check."""

    @abstractmethod
    def is_privileged(self) -> bool:
        """Whether mutating operations may run."""
