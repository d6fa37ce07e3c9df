"""Injectable time source for streak and scheduler computations."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Anything that can tell the current instant."""

    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""
        ...

    def today(self, tz: str) -> date:
        """Return the local calendar day in the given IANA zone."""
        ...


class SystemClock:
    """Clock backed by the host's real time."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self, tz: str) -> date:
        return self.now().astimezone(ZoneInfo(tz)).date()


class FixedClock:
    """Clock pinned to a given instant. Naive instants are taken as UTC."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant.astimezone(UTC)

    def now(self) -> datetime:
        return self._instant

    def today(self, tz: str) -> date:
        return self._instant.astimezone(ZoneInfo(tz)).date()

    def advance(self, delta: timedelta) -> None:
        """Move the pinned instant forward (or back, for negative deltas)."""
        self._instant += delta
