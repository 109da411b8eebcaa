"""AvailabilityPolicy — weekly working windows and approved time off."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time


@dataclass(frozen=True)
class AvailabilityWindow:
    day_of_week: int  # 0 = Sunday ... 6 = Saturday
    start: time
    end: time
    is_available: bool = True


@dataclass(frozen=True)
class TimeOff:
    start_date: date
    end_date: date
    is_approved: bool = False


def day_of_week(instant: datetime) -> int:
    """Sunday-based day index (Python's weekday() is Monday-based)."""
    return (instant.weekday() + 1) % 7


def is_available_at(
    windows: Iterable[AvailabilityWindow],
    time_off: Iterable[TimeOff],
    instant: datetime,
) -> bool:
    """Check a consultant's schedule at ``instant`` (already in schedule time).

    1. Approved time off covering the date  →  unavailable.
    2. No schedule configured at all  →  available.
    3. Otherwise the instant must fall inside an available window for that day.
    """
    today = instant.date()
    for period in time_off:
        if period.is_approved and period.start_date <= today <= period.end_date:
            return False

    schedule = list(windows)
    if not schedule:
        return True

    dow = day_of_week(instant)
    moment = instant.time().replace(tzinfo=None)
    return any(
        w.is_available and w.day_of_week == dow and w.start <= moment <= w.end
        for w in schedule
    )
