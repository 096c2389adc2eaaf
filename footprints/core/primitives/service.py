"""
Service footprint — a periodic task registered with the service manager.

The task runs ``footprints reassert`` at load and every
``start_interval`` seconds, carrying the correlation id in its
environment so the installation can recognise its own task.
"""

from __future__ import annotations

import logging
import sys

from footprints.core.models.record import ComponentId, PersistenceRecord
from footprints.core.models.snapshot import ResourceLocator
from footprints.core.models.task import TaskDescriptor
from footprints.core.primitives.base import Installation, PersistencePrimitive

logger = logging.getLogger(__name__)

CORRELATION_ENV = "FOOTPRINTS_CORRELATION_ID"


class ServicePrimitive(PersistencePrimitive):
    component_id = ComponentId.SERVICE

    def descriptor(self, correlation_id: str) -> TaskDescriptor:
        cfg = self.settings.service
        args = [sys.executable, "-m", "footprints.main"]
        if self.ctx.config_path is not None:
            args += ["--config", str(self.ctx.config_path)]
        args.append("reassert")
        return TaskDescriptor(
            label=cfg.label,
            program_arguments=args,
            run_at_load=True,
            start_interval=cfg.start_interval,
            environment={CORRELATION_ENV: correlation_id},
            stdout_path=cfg.stdout_path,
            stderr_path=cfg.stderr_path,
        )

    def backup_selector(self) -> list[ResourceLocator]:
        path = self.ctx.adapters.tasks.descriptor_path(self.settings.service.label)
        return [ResourceLocator.file(path)] if path else []

    def _install(self, correlation_id: str, previous: PersistenceRecord | None) -> Installation:
        tasks = self.ctx.adapters.tasks
        descriptor = self.descriptor(correlation_id)
        receipt = tasks.register_task(descriptor)
        if receipt.failed:
            raise self._fail(f"could not register {descriptor.label}: {receipt.error}")

        path = tasks.descriptor_path(descriptor.label)
        logger.info("Registered task %s (every %ds)", descriptor.label, descriptor.start_interval)
        return Installation(
            artifacts=[path] if path else [],
            details={"label": descriptor.label, "start_interval": descriptor.start_interval},
        )

    def _registered(self, correlation_id: str) -> bool:
        label = self.settings.service.label
        for task in self.ctx.adapters.tasks.list_tasks():
            if task.label == label:
                return task.environment.get(CORRELATION_ENV) == correlation_id
        return False

    def _missing(self, record: PersistenceRecord) -> list[str]:
        if self._registered(record.correlation_id):
            return []
        return [f"task:{self.settings.service.label}"]

    def _unregister(self) -> list[str]:
        label = self.settings.service.label
        receipt = self.ctx.adapters.tasks.unregister_task(label)
        if receipt.failed:
            logger.warning("Could not unregister %s: %s", label, receipt.error)
            return [f"task:{label}"]
        logger.info("Unregistered task %s", label)
        return []

    def _describe_install(self) -> list[str]:
        cfg = self.settings.service
        return [f"register task {cfg.label} (every {cfg.start_interval}s)"]

    def _describe_undo(self, record: PersistenceRecord) -> list[str]:
        return [f"unregister task {self.settings.service.label}"]

    def _describe_removal(self, record: PersistenceRecord | None) -> list[str]:
        return [f"unregister task {self.settings.service.label}"]

    def _undo(self, record: PersistenceRecord) -> list[str]:
        return self._unregister()

    def _remove_artifacts(self, correlation_id: str | None, record: PersistenceRecord | None) -> list[str]:
        return self._unregister()
