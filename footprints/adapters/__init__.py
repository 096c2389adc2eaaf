"""Adapters — host capability bindings.

Public re-exports for convenient access.
"""

from footprints.adapters.base import (
    Capability,
    LogAdapter,
    PrivilegeAdapter,
    TagAdapter,
    TaskAdapter,
)
from footprints.adapters.mock import (
    MockLogAdapter,
    MockPrivilegeAdapter,
    MockTagAdapter,
    MockTaskAdapter,
)
from footprints.adapters.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "Capability",
    "LogAdapter",
    "MockLogAdapter",
    "MockPrivilegeAdapter",
    "MockTagAdapter",
    "MockTaskAdapter",
    "PrivilegeAdapter",
    "TagAdapter",
    "TaskAdapter",
]
