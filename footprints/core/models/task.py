"""
TaskDescriptor — a periodic task handed to the host's service manager.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class TaskDescriptor(BaseModel):
    """A long-lived task run at system start and at a fixed interval."""

    label: str
    program_arguments: list[str]
    run_at_load: bool = True
    start_interval: int = 300           # seconds
    environment: dict[str, str] = Field(default_factory=dict)
    working_directory: str = "/tmp"
    stdout_path: str | None = None
    stderr_path: str | None = None
