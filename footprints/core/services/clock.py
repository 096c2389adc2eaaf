"""
Clock — injectable source of "now".
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


class Clock:
    """Wall clock (UTC)."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def timestamp(self) -> float:
        return self.now().timestamp()

    def iso(self) -> str:
        return self.now().isoformat()


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 2, 12, 0, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)
