"""Operating-hours arithmetic for the kiosk sleep schedule."""

from __future__ import annotations

import datetime


def parse_hhmm(value: str) -> int:
    """Convert an ``HH:MM`` string to minutes past midnight.

    Raises:
        ValueError: if the string is not a valid 24-hour clock time.
    """
    hours, sep, minutes = (value or "").strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")

    hour, minute = int(hours), int(minutes)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Time {value!r} is out of range")
    return hour * 60 + minute


def minutes_of_day(moment: datetime.datetime | datetime.time) -> int:
    """Return minutes past midnight for a wall-clock moment (seconds ignored)."""
    return moment.hour * 60 + moment.minute


def is_awake(now_minutes: int, start_minutes: int, end_minutes: int) -> bool:
    """Return True when ``now_minutes`` falls inside the operating window.

    The start minute is inclusive and the end minute exclusive. A window whose
    start is not before its end wraps past midnight; equal bounds therefore
    describe a window that never closes.
    """
    if start_minutes < end_minutes:
        return start_minutes <= now_minutes < end_minutes
    return now_minutes >= start_minutes or now_minutes < end_minutes


def should_sleep(
    now: datetime.datetime | datetime.time,
    start_time: str,
    end_time: str,
    *,
    enabled: bool = True,
) -> bool:
    """Return True when the display should be in power-saving mode at ``now``."""
    if not enabled:
        return False
    return not is_awake(minutes_of_day(now), parse_hhmm(start_time), parse_hhmm(end_time))


__all__ = [
    "is_awake",
    "minutes_of_day",
    "parse_hhmm",
    "should_sleep",
]
