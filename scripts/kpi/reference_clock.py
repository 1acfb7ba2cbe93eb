"""
Reference Clock
================
Resolves "today" in the fixed business timezone and owns the single shared
timestamp parser every other module uses.

One ``BusinessToday`` is computed per aggregation run and passed down
explicitly; nothing below this module reads the wall clock.

Exports:
    BUSINESS_TIMEZONE, BusinessToday, resolve_business_today,
    to_business_datetime, to_business_date
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from scripts.lib.errors import ConfigError

BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/New_York")


@dataclass(frozen=True)
class BusinessToday:
    """Reference date for one aggregation pass."""
    date: date
    tz: ZoneInfo
    start: datetime        # aware instant of local midnight

    @property
    def year(self) -> int:
        return self.date.year

    @property
    def month(self) -> int:
        return self.date.month

    def isoformat(self) -> str:
        return self.date.isoformat()


def _load_zone(name: str) -> ZoneInfo:
    if not name:
        raise ConfigError("Business timezone is not set", setting="BUSINESS_TIMEZONE")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown business timezone '{name}': {e}", setting="BUSINESS_TIMEZONE")


def _parse_iso(text: str) -> Optional[datetime]:
    """Parse an ISO-ish timestamp string; naive results are returned naive."""
    cleaned = text.strip()
    if not cleaned:
        return None
    # BigQuery TIMESTAMP rendering: "2025-06-27 17:05:33.000000 UTC"
    if cleaned.endswith(" UTC"):
        cleaned = cleaned[:-4] + "+00:00"
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    if len(cleaned) > 10 and cleaned[10] == " ":
        cleaned = cleaned[:10] + "T" + cleaned[11:]
    return datetime.fromisoformat(cleaned)


def resolve_business_today(now_utc: Any, timezone_name: str = BUSINESS_TIMEZONE) -> BusinessToday:
    """Convert a UTC instant to the business-local calendar date.

    ``now_utc`` may be an aware datetime, a naive datetime (taken as UTC) or
    an ISO-8601 string. Anything unparsable is a fatal configuration error;
    there is no silent fallback to UTC.
    """
    tz = _load_zone(timezone_name)

    if isinstance(now_utc, str):
        try:
            now = _parse_iso(now_utc)
        except ValueError as e:
            raise ConfigError(f"Unparsable reference instant '{now_utc}': {e}", setting="now")
    elif isinstance(now_utc, datetime):
        now = now_utc
    else:
        now = None

    if now is None:
        raise ConfigError(f"Unparsable reference instant: {now_utc!r}", setting="now")

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local_day = now.astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    return BusinessToday(date=local_day, tz=tz, start=start)


def to_business_datetime(value: Any, tz: ZoneInfo) -> Optional[datetime]:
    """Normalize a warehouse value to an aware datetime in ``tz``.

    - ``date`` (not datetime) and ``YYYY-MM-DD`` strings are calendar dates
      and map to local midnight of that same date.
    - Aware datetimes are converted; naive datetimes and offset-less ISO
      timestamps are taken as UTC.
    - BigQuery JSON objects ``{"value": ...}`` are unwrapped.

    Returns None for anything that cannot be parsed.
    """
    if value is None:
        return None

    if isinstance(value, dict):
        return to_business_datetime(value.get("value"), tz)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(tz)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)

    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            try:
                return datetime.combine(date.fromisoformat(text), time.min, tzinfo=tz)
            except ValueError:
                return None
        try:
            parsed = _parse_iso(text)
        except (ValueError, TypeError, OverflowError):
            return None
        if parsed is None:
            return None
        return to_business_datetime(parsed, tz)

    return None


def to_business_date(value: Any, tz: ZoneInfo) -> Optional[date]:
    """Local calendar date of ``value`` in ``tz``, or None."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    local = to_business_datetime(value, tz)
    return local.date() if local else None
