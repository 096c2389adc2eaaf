"""
Tag footprint — an identity tag on fixed locations plus a marker file.

Each configured location gets the tag ``<key> = <correlation id>``; the
identity marker records the same id. Periodic re-assertion is done by
the registered service task running ``footprints reassert``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from footprints.core.models.record import ComponentId, PersistenceRecord
from footprints.core.models.snapshot import ResourceLocator
from footprints.core.persistence.state_file import atomic_write_text
from footprints.core.primitives.base import Installation, PersistencePrimitive

logger = logging.getLogger(__name__)


class TagPrimitive(PersistencePrimitive):
    component_id = ComponentId.TAG

    @property
    def marker(self) -> Path:
        return Path(self.settings.tag.identity_marker)

    def backup_selector(self) -> list[ResourceLocator]:
        cfg = self.settings.tag
        return [ResourceLocator.tag(loc, cfg.key) for loc in cfg.locations] + [
            ResourceLocator.file(str(self.marker))
        ]

    def _install(self, correlation_id: str, previous: PersistenceRecord | None) -> Installation:
        cfg = self.settings.tag
        tags = self.ctx.adapters.tags

        failed = []
        for location in cfg.locations:
            receipt = tags.set_tag(location, cfg.key, correlation_id)
            if receipt.failed:
                logger.warning("Could not tag %s: %s", location, receipt.error)
                failed.append(location)
        if failed:
            raise self._fail(f"could not tag {', '.join(failed)}")

        atomic_write_text(
            self.marker,
            f"CORRELATION_ID={correlation_id}\n"
            f"TAG_KEY={cfg.key}\n"
            f"CREATED={self.ctx.clock.iso()}\n",
            prefix=".identity_",
            mode=0o644,
        )
        logger.info("Tagged %d location(s) with %s", len(cfg.locations), cfg.key)
        return Installation(
            artifacts=[str(self.marker)],
            details={"locations": list(cfg.locations)},
        )

    def _missing(self, record: PersistenceRecord) -> list[str]:
        cfg = self.settings.tag
        tags = self.ctx.adapters.tags
        missing = []
        for location in cfg.locations:
            receipt = tags.read_tag(location, cfg.key)
            if receipt.failed or not receipt.metadata.get("present") or receipt.output != record.correlation_id:
                missing.append(str(ResourceLocator.tag(location, cfg.key)))
        try:
            marker_ok = record.correlation_id in self.marker.read_text(encoding="utf-8")
        except OSError:
            marker_ok = False
        if not marker_ok:
            missing.append(str(ResourceLocator.file(str(self.marker))))
        return missing

    def _describe_install(self) -> list[str]:
        cfg = self.settings.tag
        return [f"set tag {cfg.key} on {loc}" for loc in cfg.locations] + [f"write identity marker {self.marker}"]

    def _describe_removal(self, record: PersistenceRecord | None) -> list[str]:
        cfg = self.settings.tag
        return [f"clear tag {cfg.key} on {loc}" for loc in cfg.locations] + [f"remove {self.marker}"]

    def _remove_artifacts(self, correlation_id: str | None, record: PersistenceRecord | None) -> list[str]:
        cfg = self.settings.tag
        tags = self.ctx.adapters.tags
        failed = []
        for location in cfg.locations:
            receipt = tags.clear_tag(location, cfg.key)
            if receipt.failed:
                logger.warning("Could not clear tag on %s: %s", location, receipt.error)
                failed.append(str(ResourceLocator.tag(location, cfg.key)))
        try:
            self.marker.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", self.marker, e)
            failed.append(str(self.marker))
        return failed
