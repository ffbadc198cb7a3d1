"""
Datetime helper utilities to ensure consistent timezone handling across the engine.

All engine timestamps are timezone-aware UTC. Services take a clock callable so
tests can pin "now" without patching the datetime module.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert a datetime to timezone-aware UTC.

    Naive datetimes are assumed to already be UTC.

    Example:
        >>> ensure_aware_utc(datetime(2024, 1, 1)).tzinfo is timezone.utc
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minutes_from(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)


def next_strictly_after(candidate: datetime, previous: Optional[datetime]) -> datetime:
    """Return candidate, nudged forward one microsecond past previous when needed"""
    if previous is not None and candidate <= previous:
        return previous + timedelta(microseconds=1)
    return candidate


class FrozenClock:
    """Manually advanced clock for deterministic scheduling and tests"""

    def __init__(self, start: Optional[datetime] = None):
        self.current = ensure_aware_utc(start) if start is not None else utc_now()

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current
