"""
Extended-attribute tag adapter (``xattr``).
"""

from __future__ import annotations

from footprints.adapters.base import TagAdapter
from footprints.adapters.shell.command import CommandRunner
from footprints.core.models.receipt import Receipt


class XattrTagAdapter(TagAdapter):
    """Tags stored as extended attributes via the ``xattr`` tool."""

    def __init__(self, runner: CommandRunner | None = None):
        self._runner = runner or CommandRunner(adapter=self.name)

    @property
    def name(self) -> str:
        return "xattr"

    def is_available(self) -> bool:
        return CommandRunner.available("xattr")

    def set_tag(self, location: str, key: str, value: str) -> Receipt:
        return self._runner.run("set_tag", ["xattr", "-w", key, value, location])

    def read_tag(self, location: str, key: str) -> Receipt:
        receipt = self._runner.run("read_tag", ["xattr", "-p", key, location])
        if receipt.ok:
            receipt.metadata["present"] = True
            return receipt
        # xattr exits 1 with "No such xattr" for a missing attribute
        if receipt.error and "No such xattr" in receipt.error:
            return Receipt.success(
                adapter=self.name,
                operation="read_tag",
                metadata={"present": False, "location": location},
            )
        return receipt

    def clear_tag(self, location: str, key: str) -> Receipt:
        receipt = self._runner.run("clear_tag", ["xattr", "-d", key, location])
        if receipt.failed and receipt.error and "No such xattr" in receipt.error:
            return Receipt.skip(adapter=self.name, operation="clear_tag", reason="already absent")
        return receipt
