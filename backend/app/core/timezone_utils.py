"""
Time helpers for the booking core.

Every policy decision is made against the server clock. Services accept an
injectable ``Clock`` so tests can pin "now" without patching datetime.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are treated as UTC; SQLite returns naive datetimes even for
    ``DateTime(timezone=True)`` columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(earlier: datetime, later: datetime) -> float:
    """Signed number of hours from ``earlier`` to ``later``."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600.0


def start_of_month(value: datetime) -> datetime:
    """First instant of the calendar month (UTC) containing ``value``."""
    current = ensure_utc(value)
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
