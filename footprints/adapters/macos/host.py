"""
Host facts — privilege check and report header values.

``probe_host()`` is the only place that queries the OS for the values a
synthetic report's header needs; the generator itself receives them as
a HostEnvironment.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import time

from footprints.adapters.base import PrivilegeAdapter
from footprints.adapters.shell.command import CommandRunner
from footprints.core.models.report import HostEnvironment

logger = logging.getLogger(__name__)

_BOOTTIME_RE = re.compile(r"sec\s*=\s*(\d+)")


class PosixPrivilegeAdapter(PrivilegeAdapter):
    """Privileged means effective uid 0."""

    @property
    def name(self) -> str:
        return "posix-privilege"

    def is_available(self) -> bool:
        return hasattr(os, "geteuid")

    def is_privileged(self) -> bool:
        return self.is_available() and os.geteuid() == 0


def probe_host(runner: CommandRunner | None = None) -> HostEnvironment:
    """Collect OS version, kernel version and boot time.

    Falls back to the HostEnvironment defaults for any value the host
    cannot provide (non-macOS hosts, missing tools).
    """
    runner = runner or CommandRunner(adapter="host", timeout=5.0)
    defaults = HostEnvironment()
    now = time.time()

    os_version = platform.mac_ver()[0] or defaults.os_version
    build_version = defaults.build_version
    receipt = runner.run("sw_vers", ["sw_vers", "-buildVersion"])
    if receipt.ok and receipt.output:
        build_version = receipt.output

    boot_time = None
    receipt = runner.run("boottime", ["sysctl", "-n", "kern.boottime"])
    if receipt.ok:
        match = _BOOTTIME_RE.search(receipt.output)
        if match:
            boot_time = float(match.group(1))
    if boot_time is None:
        # Approximation: monotonic clock counts from boot on Linux and macOS
        boot_time = now - time.monotonic()
        logger.debug("kern.boottime unavailable, boot time approximated")

    machine = platform.machine()
    return HostEnvironment(
        os_version=os_version,
        build_version=build_version,
        kernel_version=platform.release() or defaults.kernel_version,
        boot_time=boot_time,
        captured_at=now,
        hardware_model=defaults.hardware_model,
        code_type="ARM-64" if machine in ("arm64", "aarch64") else "X86-64",
    )
