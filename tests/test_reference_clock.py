"""Tests for the reference clock and the shared timestamp parser."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from scripts.kpi.reference_clock import (
    resolve_business_today,
    to_business_date,
    to_business_datetime,
)
from scripts.lib.errors import ConfigError

NY = ZoneInfo("America/New_York")


class TestResolveBusinessToday:
    def test_late_evening_utc_is_previous_local_day(self):
        today = resolve_business_today("2025-07-01T03:30:00Z", "America/New_York")
        assert today.date == date(2025, 6, 30)

    def test_aware_datetime(self):
        now = datetime(2025, 7, 1, 16, 0, tzinfo=timezone.utc)
        today = resolve_business_today(now, "America/New_York")
        assert today.date == date(2025, 7, 1)
        assert today.start == datetime(2025, 7, 1, tzinfo=NY)

    def test_naive_datetime_taken_as_utc(self):
        today = resolve_business_today(datetime(2025, 7, 1, 2, 0), "America/New_York")
        assert today.date == date(2025, 6, 30)

    def test_spring_forward_midnight(self):
        # 2025-03-09: clocks jump at 02:00 local; midnight is still EST (UTC-5)
        assert resolve_business_today("2025-03-09T04:59:00Z", "America/New_York").date == date(2025, 3, 8)
        assert resolve_business_today("2025-03-09T05:00:00Z", "America/New_York").date == date(2025, 3, 9)

    def test_fall_back_midnight(self):
        # 2025-11-02: midnight is still EDT (UTC-4)
        assert resolve_business_today("2025-11-02T03:59:00Z", "America/New_York").date == date(2025, 11, 1)
        assert resolve_business_today("2025-11-02T04:00:00Z", "America/New_York").date == date(2025, 11, 2)

    def test_unparsable_now_is_fatal(self):
        with pytest.raises(ConfigError):
            resolve_business_today("not a timestamp", "America/New_York")

    def test_missing_now_is_fatal(self):
        with pytest.raises(ConfigError):
            resolve_business_today(None, "America/New_York")

    def test_unknown_timezone_is_fatal(self):
        with pytest.raises(ConfigError) as exc:
            resolve_business_today("2025-07-01T16:00:00Z", "Mars/Olympus_Mons")
        assert exc.value.code == "CONFIG_ERROR"
        assert exc.value.details["setting"] == "BUSINESS_TIMEZONE"


class TestToBusinessDatetime:
    def test_date_only_string_is_local_calendar_date(self):
        parsed = to_business_datetime("2025-06-30", NY)
        assert parsed == datetime(2025, 6, 30, tzinfo=NY)

    def test_date_object_is_local_midnight(self):
        assert to_business_date(date(2025, 6, 30), NY) == date(2025, 6, 30)

    def test_bigquery_utc_suffix(self):
        parsed = to_business_datetime("2025-06-30 02:00:00 UTC", NY)
        assert parsed.date() == date(2025, 6, 29)
        assert parsed.hour == 22

    def test_iso_with_offset(self):
        parsed = to_business_datetime("2025-06-30T09:00:00-04:00", NY)
        assert parsed.hour == 9

    def test_naive_timestamp_string_taken_as_utc(self):
        parsed = to_business_datetime("2025-06-30T14:00:00", NY)
        assert parsed.hour == 10

    def test_bigquery_json_object(self):
        assert to_business_date({"value": "2025-06-30"}, NY) == date(2025, 6, 30)

    def test_unparsable_values_return_none(self):
        assert to_business_datetime(None, NY) is None
        assert to_business_datetime("garbage", NY) is None
        assert to_business_datetime("2025-13-45", NY) is None
        assert to_business_datetime(12345, NY) is None
        assert to_business_date("", NY) is None
