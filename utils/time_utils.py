"""
utils/time_utils.py

Purpose: Time, duration and percentage helpers

- Meeting duration calculation and formatting
- Month-over-month percentage change
- Monthly rollover boundary calculation
- Timestamp utilities
"""

import math
from datetime import datetime
from typing import Optional


def round_half_up(value: float) -> int:
    """
    Rounds to the nearest integer, with .5 going towards positive infinity.
    """
    return int(math.floor(value + 0.5))


def minutes_between(start: datetime, end: datetime) -> int:
    """
    Whole minutes elapsed between two timestamps.

    Negative when end precedes start (clock skew); the value is not clamped.
    """
    return round_half_up((end - start).total_seconds() / 60)


def format_duration(minutes: int) -> str:
    """
    Formats a duration in minutes as "{h}h {m}m".

    >>> format_duration(125)
    '2h 5m'
    """
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m"


def calculate_percentage_change(current: int, previous: int) -> int:
    """
    Percentage change of current against a baseline, as a whole number.

    A zero baseline yields 100 when there is any current activity, else 0.
    """
    if previous == 0:
        return 100 if current > 0 else 0
    return round_half_up((current - previous) / previous * 100)


def classify_change(change: int) -> str:
    """Maps a percentage change to positive / negative / neutral."""
    if change > 0:
        return "positive"
    if change < 0:
        return "negative"
    return "neutral"


def next_month_start(now: datetime) -> datetime:
    """
    Returns midnight of the first day of the month following `now`.
    """
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)


def format_timestamp(dt: Optional[datetime], format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """
    Formats a datetime object to string.
    """
    if not dt:
        return "N/A"
    return dt.strftime(format_str)
