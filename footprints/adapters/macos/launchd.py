"""
launchd task adapter — LaunchDaemon plists + ``launchctl``.
"""

from __future__ import annotations

import logging
import plistlib
from pathlib import Path

from footprints.adapters.base import TaskAdapter
from footprints.adapters.shell.command import CommandRunner
from footprints.core.models.receipt import Receipt
from footprints.core.models.task import TaskDescriptor
from footprints.core.persistence.state_file import atomic_write_text

logger = logging.getLogger(__name__)


def descriptor_to_plist(descriptor: TaskDescriptor) -> dict:
    """Build the LaunchDaemon property list for a task."""
    plist: dict = {
        "Label": descriptor.label,
        "ProgramArguments": list(descriptor.program_arguments),
        "RunAtLoad": descriptor.run_at_load,
        "StartInterval": descriptor.start_interval,
        "ProcessType": "Background",
        "WorkingDirectory": descriptor.working_directory,
    }
    if descriptor.environment:
        plist["EnvironmentVariables"] = dict(descriptor.environment)
    if descriptor.stdout_path:
        plist["StandardOutPath"] = descriptor.stdout_path
    if descriptor.stderr_path:
        plist["StandardErrorPath"] = descriptor.stderr_path
    return plist


def plist_to_descriptor(plist: dict) -> TaskDescriptor:
    return TaskDescriptor(
        label=plist["Label"],
        program_arguments=list(plist.get("ProgramArguments", [])),
        run_at_load=bool(plist.get("RunAtLoad", False)),
        start_interval=int(plist.get("StartInterval", 0)),
        environment=dict(plist.get("EnvironmentVariables", {})),
        working_directory=plist.get("WorkingDirectory", "/"),
        stdout_path=plist.get("StandardOutPath"),
        stderr_path=plist.get("StandardErrorPath"),
    )


class LaunchdTaskAdapter(TaskAdapter):
    """Tasks as plists in a LaunchDaemons directory, loaded with launchctl."""

    def __init__(self, descriptor_dir: str = "/Library/LaunchDaemons", runner: CommandRunner | None = None):
        self._dir = Path(descriptor_dir)
        self._runner = runner or CommandRunner(adapter=self.name)

    @property
    def name(self) -> str:
        return "launchd"

    def is_available(self) -> bool:
        return CommandRunner.available("launchctl")

    def descriptor_path(self, label: str) -> str | None:
        return str(self._dir / f"{label}.plist")

    def register_task(self, descriptor: TaskDescriptor) -> Receipt:
        path = Path(self.descriptor_path(descriptor.label) or "")
        try:
            content = plistlib.dumps(descriptor_to_plist(descriptor)).decode("utf-8")
            atomic_write_text(path, content, prefix=".plist_", mode=0o644)
        except OSError as e:
            return Receipt.failure(adapter=self.name, operation="register_task", error=f"Cannot write {path}: {e}")

        # Re-registration: drop any loaded copy first, its outcome is irrelevant
        unload = self._runner.run("unload", ["launchctl", "unload", str(path)])
        if unload.failed:
            logger.debug("launchctl unload before load: %s", unload.error)
        receipt = self._runner.run("register_task", ["launchctl", "load", "-w", str(path)])
        receipt.metadata["path"] = str(path)
        return receipt

    def unregister_task(self, label: str) -> Receipt:
        path = Path(self.descriptor_path(label) or "")
        if path.is_file():
            receipt = self._runner.run("unregister_task", ["launchctl", "unload", "-w", str(path)])
            if receipt.failed:
                return receipt
            try:
                path.unlink()
            except OSError as e:
                return Receipt.failure(adapter=self.name, operation="unregister_task", error=f"Cannot remove {path}: {e}")
            return Receipt.success(adapter=self.name, operation="unregister_task", output=label)

        # No plist: make sure nothing is left loaded under the label
        receipt = self._runner.run("unregister_task", ["launchctl", "remove", label])
        if receipt.failed:
            return Receipt.skip(adapter=self.name, operation="unregister_task", reason="not registered")
        return receipt

    def _loaded_labels(self) -> set[str]:
        receipt = self._runner.run("list", ["launchctl", "list"])
        if receipt.failed:
            logger.warning("launchctl list failed: %s", receipt.error)
            return set()
        labels = set()
        for line in receipt.output.splitlines()[1:]:  # header: PID Status Label
            parts = line.split()
            if len(parts) >= 3:
                labels.add(parts[2])
        return labels

    def list_tasks(self) -> list[TaskDescriptor]:
        if not self._dir.is_dir():
            return []
        loaded = self._loaded_labels()
        tasks = []
        for plist_path in sorted(self._dir.glob("*.plist")):
            try:
                with plist_path.open("rb") as fh:
                    data = plistlib.load(fh)
                descriptor = plist_to_descriptor(data)
            except Exception as e:
                logger.debug("Skipping unreadable plist %s: %s", plist_path, e)
                continue
            if descriptor.label in loaded:
                tasks.append(descriptor)
        return tasks
