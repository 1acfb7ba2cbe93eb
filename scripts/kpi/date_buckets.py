"""
Date Bucketer
==============
Pure predicates that place a candidate date relative to a ``BusinessToday``.

Every candidate is normalized to a business-local calendar date before any
comparison, so UTC instants and local calendar dates never mix. Predicates
return False for a null or unparsable candidate and never raise.

Weeks run Sunday through Saturday; quarters are Jan/Apr/Jul/Oct blocks.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Optional, Tuple

from scripts.kpi.reference_clock import BusinessToday, to_business_date

MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
WEEKDAY_ABBR = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------

def local_date(value: Any, today: BusinessToday) -> Optional[date]:
    """Normalize ``value`` to a calendar date in the business timezone."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return to_business_date(value, today.tz)


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def quarter_of(day: date) -> int:
    """Quarter number 1-4."""
    return (day.month - 1) // 3 + 1


def month_key(day: date) -> str:
    """Format a date as a 'YYYY-MM' string."""
    return day.strftime("%Y-%m")


def week_label(start: date) -> str:
    """'Jun 29 - Jul 5' or 'Jul 6-12' for the Sunday-week starting at ``start``."""
    end = start + timedelta(days=6)
    if start.month == end.month:
        return f"{MONTH_ABBR[start.month - 1]} {start.day}-{end.day}"
    return (
        f"{MONTH_ABBR[start.month - 1]} {start.day} - "
        f"{MONTH_ABBR[end.month - 1]} {end.day}"
    )


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def is_same_day(value: Any, today: BusinessToday) -> bool:
    d = local_date(value, today)
    return d is not None and d == today.date


def is_in_week(value: Any, today: BusinessToday) -> bool:
    """[Sunday 00:00, next Sunday 00:00) containing today."""
    d = local_date(value, today)
    if d is None:
        return False
    start = week_start(today.date)
    return start <= d < start + timedelta(days=7)


def is_in_last_week(value: Any, today: BusinessToday) -> bool:
    """The Sunday-week immediately before the current one."""
    d = local_date(value, today)
    if d is None:
        return False
    start = week_start(today.date) - timedelta(days=7)
    return start <= d < start + timedelta(days=7)


def is_in_month(value: Any, today: BusinessToday) -> bool:
    d = local_date(value, today)
    return d is not None and (d.year, d.month) == (today.year, today.month)


def is_in_next_month(value: Any, today: BusinessToday) -> bool:
    d = local_date(value, today)
    return d is not None and (d.year, d.month) == next_month(today.year, today.month)


def is_in_quarter(value: Any, today: BusinessToday) -> bool:
    d = local_date(value, today)
    return (
        d is not None
        and d.year == today.year
        and quarter_of(d) == quarter_of(today.date)
    )


def is_in_year(value: Any, today: BusinessToday) -> bool:
    d = local_date(value, today)
    return d is not None and d.year == today.year


def is_in_last_n_days(value: Any, today: BusinessToday, n: int) -> bool:
    """Inclusive range [today - n days, today]."""
    d = local_date(value, today)
    if d is None:
        return False
    return today.date - timedelta(days=n) <= d <= today.date


def is_future_relative_to(value: Any, today: BusinessToday) -> bool:
    """True for today and later; gates on-the-books inclusion."""
    d = local_date(value, today)
    return d is not None and d >= today.date


def week_offset(value: Any, today: BusinessToday) -> Optional[int]:
    """Whole Sunday-weeks from the current week to the week of ``value``."""
    d = local_date(value, today)
    if d is None:
        return None
    return (week_start(d) - week_start(today.date)).days // 7
