"""
Mock adapters — in-memory test doubles for every host capability.

Used by the test-suite and by ``--mock`` to exercise the whole
lifecycle without the OS tools. Each mock keeps a call log and can be
told to fail a given operation.

Tags and tasks live in memory, or in a JSON file when given a *store*
path so that separate ``--mock`` invocations see the same host.
"""

from __future__ import annotations

from pathlib import Path

from footprints.adapters.base import LogAdapter, PrivilegeAdapter, TagAdapter, TaskAdapter
from footprints.core.models.receipt import Receipt
from footprints.core.models.task import TaskDescriptor
from footprints.core.persistence.state_file import load_json, save_json


class _MockMixin:
    """Shared call log + scripted failures."""

    _name: str

    def _init_mock(self, adapter_name: str, available: bool) -> None:
        self._name = adapter_name
        self._available = available
        self._failures: dict[str, str] = {}
        self._call_log: list[tuple[str, tuple]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[tuple[str, tuple]]:
        """All (operation, args) calls this mock has received."""
        return self._call_log

    def calls(self, operation: str) -> list[tuple]:
        """Arguments of every call to *operation*."""
        return [args for op, args in self._call_log if op == operation]

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, operation: str, error: str = "Mock failure") -> None:
        """Configure an operation to fail until cleared."""
        self._failures[operation] = error

    def clear_failure(self, operation: str | None = None) -> None:
        if operation is None:
            self._failures.clear()
        else:
            self._failures.pop(operation, None)

    def _record(self, operation: str, *args: object) -> Receipt | None:
        self._call_log.append((operation, args))
        if operation in self._failures:
            return Receipt.failure(
                adapter=self._name,
                operation=operation,
                error=self._failures[operation],
            )
        return None


class MockTagAdapter(_MockMixin, TagAdapter):
    """Tags kept in a dict keyed by (location, key)."""

    def __init__(self, adapter_name: str = "mock-tags", available: bool = True, store: Path | None = None):
        self._init_mock(adapter_name, available)
        self._store = store
        self.tags: dict[tuple[str, str], str] = {}
        data = load_json(store) if store is not None else None
        if isinstance(data, list):
            for item in data:
                self.tags[(item["location"], item["key"])] = item["value"]

    def _save(self) -> None:
        if self._store is not None:
            items = [{"location": loc, "key": key, "value": value} for (loc, key), value in sorted(self.tags.items())]
            save_json(items, self._store)

    def set_tag(self, location: str, key: str, value: str) -> Receipt:
        failed = self._record("set_tag", location, key, value)
        if failed:
            return failed
        self.tags[(location, key)] = value
        self._save()
        return Receipt.success(adapter=self.name, operation="set_tag", metadata={"location": location})

    def read_tag(self, location: str, key: str) -> Receipt:
        failed = self._record("read_tag", location, key)
        if failed:
            return failed
        value = self.tags.get((location, key))
        return Receipt.success(
            adapter=self.name,
            operation="read_tag",
            output=value or "",
            metadata={"present": value is not None, "location": location},
        )

    def clear_tag(self, location: str, key: str) -> Receipt:
        failed = self._record("clear_tag", location, key)
        if failed:
            return failed
        self.tags.pop((location, key), None)
        self._save()
        return Receipt.success(adapter=self.name, operation="clear_tag", metadata={"location": location})


class MockTaskAdapter(_MockMixin, TaskAdapter):
    """Registered tasks kept in a dict keyed by label."""

    def __init__(self, adapter_name: str = "mock-tasks", available: bool = True, store: Path | None = None):
        self._init_mock(adapter_name, available)
        self._store = store
        self.tasks: dict[str, TaskDescriptor] = {}
        data = load_json(store) if store is not None else None
        if isinstance(data, dict):
            self.tasks = {label: TaskDescriptor.model_validate(d) for label, d in data.items()}

    def _save(self) -> None:
        if self._store is not None:
            save_json({label: d.model_dump(mode="json") for label, d in self.tasks.items()}, self._store)

    def register_task(self, descriptor: TaskDescriptor) -> Receipt:
        failed = self._record("register_task", descriptor.label)
        if failed:
            return failed
        self.tasks[descriptor.label] = descriptor
        self._save()
        return Receipt.success(adapter=self.name, operation="register_task", output=descriptor.label)

    def unregister_task(self, label: str) -> Receipt:
        failed = self._record("unregister_task", label)
        if failed:
            return failed
        self.tasks.pop(label, None)
        self._save()
        return Receipt.success(adapter=self.name, operation="unregister_task", output=label)

    def list_tasks(self) -> list[TaskDescriptor]:
        self._call_log.append(("list_tasks", ()))
        return list(self.tasks.values())


class MockLogAdapter(_MockMixin, LogAdapter):
    """Emitted entries kept in a list of (tag, level, message)."""

    def __init__(self, adapter_name: str = "mock-log", available: bool = True):
        self._init_mock(adapter_name, available)
        self.entries: list[tuple[str, str, str]] = []

    def emit(self, tag: str, level: str, message: str) -> Receipt:
        failed = self._record("emit", tag, level, message)
        if failed:
            return failed
        self.entries.append((tag, level, message))
        return Receipt.success(adapter=self.name, operation="emit")


class MockPrivilegeAdapter(_MockMixin, PrivilegeAdapter):
    """Privilege check with a settable answer."""

    def __init__(self, privileged: bool = True, adapter_name: str = "mock-privilege"):
        self._init_mock(adapter_name, True)
        self.privileged = privileged

    def is_privileged(self) -> bool:
        self._call_log.append(("is_privileged", ()))
        return self.privileged
