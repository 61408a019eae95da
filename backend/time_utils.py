"""
Time utilities for the scheduling backend.

This module provides a single source of truth for time operations, so that
date arithmetic in the dependency cascade and the timeline checks behaves
the same regardless of whether the database hands back aware or naive
datetimes.
"""

import math
from datetime import datetime, timezone, timedelta
from typing import Optional

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime for comparison and subtraction.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on
    the way back from the database).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calculate_date_delta(old_date: Optional[datetime], new_date: Optional[datetime]) -> int:
    """
    Signed difference new_date - old_date in milliseconds.

    Returns 0 when either date is missing.
    """
    if old_date is None or new_date is None:
        return 0
    delta = as_utc(new_date) - as_utc(old_date)
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def shift(value: Optional[datetime], delta_ms: int) -> Optional[datetime]:
    """Move a datetime by delta_ms milliseconds, keeping None as None."""
    if value is None:
        return None
    return value + timedelta(milliseconds=delta_ms)


def duration_days(start_date: Optional[datetime], due_date: Optional[datetime]) -> int:
    """
    Duration in whole days, rounded up.

    Args:
        start_date: Task start (may be None)
        due_date: Task due date (may be None)

    Returns:
        0 when either date is missing, otherwise ceil((due - start) / 1 day)
    """
    if start_date is None or due_date is None:
        return 0
    return math.ceil(calculate_date_delta(start_date, due_date) / MILLIS_PER_DAY)
