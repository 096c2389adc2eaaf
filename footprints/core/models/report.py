"""
Synthetic diagnostic report models.

Frozen so two reports generated from the same seed compare equal
field by field.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StackFrame(BaseModel):
    """One line of the crashed thread's backtrace."""

    model_config = ConfigDict(frozen=True)

    index: int
    image_name: str
    address: str            # 0x + 16 lowercase hex digits
    symbol_name: str
    symbol_offset: int


class BinaryImage(BaseModel):
    """One loaded image referenced by the backtrace."""

    model_config = ConfigDict(frozen=True)

    image_name: str
    load_start: str
    load_end: str
    uuid: str
    path: str


class HostEnvironment(BaseModel):
    """Header values sourced from the host, injected into the generator."""

    model_config = ConfigDict(frozen=True)

    os_version: str = "14.4.1"
    build_version: str = "23E224"
    kernel_version: str = "23.4.0"
    boot_time: float = 1704067200.0     # epoch seconds
    captured_at: float = 1704153600.0   # epoch seconds; the generator's "now"
    hardware_model: str = "Mac14,2"
    code_type: str = "ARM-64"


class SyntheticReport(BaseModel):
    """A generated crash report."""

    model_config = ConfigDict(frozen=True)

    process_name: str
    process_id: int
    identifier: str
    path: str
    timestamp_utc: str
    exception_kind: str
    signal: str
    exception_codes: str
    crash_address: str
    crashed_thread: int
    incident_id: str
    uptime_seconds: int
    os_version: str
    build_version: str
    kernel_version: str
    hardware_model: str
    code_type: str
    stack_frames: tuple[StackFrame, ...] = Field(default_factory=tuple)
    binary_images: tuple[BinaryImage, ...] = Field(default_factory=tuple)

    def image(self, name: str) -> BinaryImage | None:
        """Look up a binary image by name."""
        for img in self.binary_images:
            if img.image_name == name:
                return img
        return None
