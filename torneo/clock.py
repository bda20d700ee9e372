"""Injectable clocks.

Operations read the clock once and pass that instant to every check they make.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from torneo.utils.errors import InvalidArgumentError


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to.

    Usage:
        clock = ManualClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        clock.advance(timedelta(minutes=11))
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment


def require_aware(value: Optional[datetime], field_name: str) -> None:
    """Reject naive datetimes; every instant compared against a clock is UTC-aware."""
    if value is not None and (
        value.tzinfo is None or value.tzinfo.utcoffset(value) is None
    ):
        raise InvalidArgumentError(
            f"{field_name} must be timezone-aware",
            details={"field": field_name},
        )
