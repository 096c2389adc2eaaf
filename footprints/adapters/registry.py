"""
Adapter registry — the set of host capabilities the core runs against.

The registry is the single point of adapter management. Primitives
never construct adapters; they receive them from here, so the same
lifecycle runs against macOS tools or against in-memory mocks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from footprints.adapters.base import Capability, LogAdapter, PrivilegeAdapter, TagAdapter, TaskAdapter
from footprints.core.errors import PreconditionError
from footprints.core.models.settings import Settings

logger = logging.getLogger(__name__)

ROLES: dict[str, type[Capability]] = {
    "tags": TagAdapter,
    "tasks": TaskAdapter,
    "logs": LogAdapter,
    "privilege": PrivilegeAdapter,
}


class AdapterRegistry:
    """Capability adapters by role ('tags', 'tasks', 'logs', 'privilege')."""

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Capability] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, role: str, adapter: Capability) -> None:
        """Register an adapter for a role."""
        expected = ROLES.get(role)
        if expected is None:
            raise ValueError(f"Unknown adapter role '{role}'. Valid: {', '.join(sorted(ROLES))}")
        if not isinstance(adapter, expected):
            raise TypeError(f"{adapter!r} is not a {expected.__name__}")
        if role in self._adapters:
            logger.warning("Overwriting existing adapter for %s: %s", role, self._adapters[role].name)
        self._adapters[role] = adapter
        logger.debug("Registered adapter %s for %s", adapter.name, role)

    def get(self, role: str) -> Capability | None:
        return self._adapters.get(role)

    def require(self, role: str) -> Any:
        """Adapter for *role*; a missing one is a precondition failure."""
        adapter = self._adapters.get(role)
        if adapter is None:
            raise PreconditionError(f"No adapter registered for '{role}'")
        return adapter

    @property
    def tags(self) -> TagAdapter:
        return self.require("tags")

    @property
    def tasks(self) -> TaskAdapter:
        return self.require("tasks")

    @property
    def logs(self) -> LogAdapter:
        return self.require("logs")

    @property
    def privilege(self) -> PrivilegeAdapter:
        return self.require("privilege")

    def list_adapters(self) -> list[str]:
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of all registered adapters."""
        status = {}
        for role, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[role] = {
                "name": adapter.name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    # ── Factories ────────────────────────────────────────────────

    @classmethod
    def for_macos(cls, settings: Settings) -> AdapterRegistry:
        """Registry wired to the real macOS tools."""
        from footprints.adapters.macos.host import PosixPrivilegeAdapter
        from footprints.adapters.macos.launchd import LaunchdTaskAdapter
        from footprints.adapters.macos.syslog import SyslogAdapter
        from footprints.adapters.macos.xattr import XattrTagAdapter

        registry = cls()
        registry.register("tags", XattrTagAdapter())
        registry.register("tasks", LaunchdTaskAdapter(descriptor_dir=settings.service.descriptor_dir))
        registry.register("logs", SyslogAdapter())
        registry.register("privilege", PosixPrivilegeAdapter())
        return registry

    @classmethod
    def mock(cls, privileged: bool = True, store_dir: Path | None = None) -> AdapterRegistry:
        """Registry of mocks standing in for the OS tools.

        With *store_dir*, mock tags and tasks persist in JSON files there
        so state carries across processes. Without it they are in-memory.
        """
        from footprints.adapters.mock import (
            MockLogAdapter,
            MockPrivilegeAdapter,
            MockTagAdapter,
            MockTaskAdapter,
        )

        registry = cls(mock_mode=True)
        registry.register("tags", MockTagAdapter(store=store_dir / "tags.json" if store_dir else None))
        registry.register("tasks", MockTaskAdapter(store=store_dir / "tasks.json" if store_dir else None))
        registry.register("logs", MockLogAdapter())
        registry.register("privilege", MockPrivilegeAdapter(privileged=privileged))
        return registry
