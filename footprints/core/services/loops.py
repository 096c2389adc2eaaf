"""
Background loops — jittered periodic work with cooperative cancellation.

A loop is a daemon thread that sleeps ``uniform(min_interval, max_interval)``
seconds on a ``threading.Event`` and runs its body at each wake-up until
the event is set. While running it keeps a pid file, so a process other
than the one hosting the loop can ask it to stop (SIGTERM) and wait for
the pid file to disappear.
"""

from __future__ import annotations

import logging
import os
import random
import signal
import threading
import time
from collections.abc import Callable
from pathlib import Path

from footprints.core.persistence.state_file import atomic_write_text

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.05
"""Seconds between pid-file checks while waiting for a remote loop to stop."""


class BackgroundLoop:
    """One periodic task bound to one component.

    Args:
        name: Thread name (``loop-<component>``).
        body: Called once per wake-up. Exceptions are logged and counted;
            they never end the loop.
        rng: Random source for the sleep jitter.
        min_interval: Lower bound of the sleep, in seconds.
        max_interval: Upper bound of the sleep, in seconds.
        pid_path: Where to advertise the hosting process while running.
    """

    def __init__(
        self,
        name: str,
        body: Callable[[], None],
        *,
        rng: random.Random,
        min_interval: float,
        max_interval: float,
        pid_path: Path | None = None,
    ):
        if min_interval <= 0 or max_interval < min_interval:
            raise ValueError(f"invalid interval bounds {min_interval}..{max_interval}")
        self.name = name
        self._body = body
        self._rng = rng
        self._min = min_interval
        self._max = max_interval
        self._pid_path = pid_path
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.iterations = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_delay(self) -> float:
        return self._rng.uniform(self._min, self._max)

    def start(self) -> threading.Thread:
        """Start the loop thread (no-op if already running)."""
        if self.running:
            return self._thread  # type: ignore[return-value]
        self._stop.clear()
        if self._pid_path is not None:
            self._pid_path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self._pid_path, f"{os.getpid()}\n", prefix=".pid_")
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()
        logger.info("Loop %s started (every %.1f-%.1fs)", self.name, self._min, self._max)
        return self._thread

    def stop(self, grace: float) -> bool:
        """Signal the loop and join it for at most *grace* seconds.

        Returns True when the thread is confirmed stopped.
        """
        self._stop.set()
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout=grace)
        stopped = not thread.is_alive()
        if stopped:
            logger.info("Loop %s stopped after %d iteration(s)", self.name, self.iterations)
        else:
            logger.warning("Loop %s did not stop within %.1fs", self.name, grace)
        return stopped

    def _run(self) -> None:
        try:
            while not self._stop.wait(self.next_delay()):
                try:
                    self._body()
                    self.iterations += 1
                except Exception as e:
                    self.failures += 1
                    logger.warning("Loop %s iteration failed: %s", self.name, e)
        finally:
            self._release_pid()

    def _release_pid(self) -> None:
        if self._pid_path is None:
            return
        if read_pid(self._pid_path) == os.getpid():
            self._pid_path.unlink(missing_ok=True)


# ═══════════════════════════════════════════════════════════════════
#  Cross-process stop
# ═══════════════════════════════════════════════════════════════════


def read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def stop_by_pidfile(path: Path, grace: float) -> bool:
    """Stop a loop hosted by another process.

    Sends SIGTERM to the pid recorded in *path* and waits up to *grace*
    seconds for the pid file to be removed. A pid file whose process is
    gone is stale and removed here. Returns True when no loop is left.
    """
    pid = read_pid(path)
    if pid is None:
        return True
    if not pid_alive(pid):
        logger.debug("Removing stale pid file %s (pid %d)", path, pid)
        path.unlink(missing_ok=True)
        return True

    if pid != os.getpid():
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            path.unlink(missing_ok=True)
            return True
        except PermissionError as e:
            logger.warning("Cannot signal loop host %d: %s", pid, e)
            return False

    deadline = time.monotonic() + grace
    while time.monotonic() < deadline:
        if not path.exists():
            return True
        time.sleep(POLL_INTERVAL_S)
    return not path.exists()
