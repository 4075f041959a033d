"""Admission window arithmetic shared by the video service and its schemas."""

from __future__ import annotations

from datetime import datetime, timedelta
import math

from app.core.timezone_utils import ensure_utc


def join_opens_at(start_at: datetime, lead_minutes: int) -> datetime:
    """First instant a participant may join a class."""
    return ensure_utc(start_at) - timedelta(minutes=lead_minutes)


def minutes_until(now: datetime, target: datetime) -> int:
    """Whole minutes from ``now`` until ``target``, rounded up, never below 1."""
    seconds = (ensure_utc(target) - ensure_utc(now)).total_seconds()
    return max(1, math.ceil(seconds / 60))


def token_ttl_seconds(now: datetime, end_at: datetime, grace_seconds: int) -> int:
    """Lifetime of a room token: until class end plus a grace period."""
    remaining = (ensure_utc(end_at) - ensure_utc(now)).total_seconds()
    return int(math.ceil(max(0.0, remaining))) + grace_seconds
