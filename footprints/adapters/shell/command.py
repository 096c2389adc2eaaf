"""
Command runner — execute one host tool and capture its outcome.

The macOS capability adapters are thin wrappers over this: each OS
call is a single command whose exit status becomes a Receipt.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from footprints.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class CommandRunner:
    """Run argv lists (never through a shell) and return receipts.

    Args:
        adapter: Name stamped on the receipts.
        timeout: Seconds before a command is killed.
    """

    def __init__(self, adapter: str, timeout: float = 30.0):
        self.adapter = adapter
        self.timeout = timeout

    @staticmethod
    def available(tool: str) -> bool:
        return shutil.which(tool) is not None

    def run(self, operation: str, argv: list[str]) -> Receipt:
        """Execute *argv*; non-zero exit is a failure receipt."""
        pretty = " ".join(argv)
        logger.debug("Executing: %s", pretty)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.adapter,
                operation=operation,
                error=f"Command timed out after {self.timeout}s",
                metadata={"command": pretty, "timeout": self.timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.adapter,
                operation=operation,
                error=f"Command execution error: {e}",
                metadata={"command": pretty},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.adapter,
                operation=operation,
                output=stdout,
                duration_ms=elapsed_ms,
                metadata={"command": pretty, "return_code": 0, "stderr": stderr},
            )
        return Receipt.failure(
            adapter=self.adapter,
            operation=operation,
            error=stderr or f"Command exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            metadata={"command": pretty, "return_code": result.returncode, "stdout": stdout},
        )
