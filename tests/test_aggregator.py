"""Tests for the single-pass metrics aggregator."""

from datetime import date
from zoneinfo import ZoneInfo

import pytest

from scripts.kpi.aggregator import (
    DEFAULT_CONFIG,
    KpiCounters,
    MetricsAggregator,
    effective_conversion,
    verify_invariants,
)
from scripts.kpi.classifiers import classify_quote, classify_rows
from scripts.lib.errors import InvariantViolationError

NY = ZoneInfo("America/New_York")


def _aggregate(today, quotes=(), jobs=(), requests=(), config=None):
    q, j, r = classify_rows(list(quotes), list(jobs), list(requests), today.tz)
    return MetricsAggregator(today, config).aggregate(q, j, r)


def _quote(number, sent, converted=None, status="Awaiting Response",
           dollars=100, salesperson="Christian"):
    return {
        "quote_number": number, "salesperson": salesperson, "status": status,
        "sent_date": sent, "converted_date": converted, "total_dollars": dollars,
    }


def _job(number, when, one_off=0, visit=0, job_type="ONE_OFF", converted=None):
    return {
        "Job_Number": number, "Date": when, "Job_type": job_type,
        "One_off_job_dollars": one_off, "Visit_based_dollars": visit,
        "Date_Converted": converted, "SalesPerson": "Christian",
    }


class TestQuoteCounters:
    def test_three_quote_scenario(self, today, scenario_rows):
        c = _aggregate(today, quotes=scenario_rows["quotes"])
        assert c.quotes_this_week == 3
        assert c.quotes_this_week_converted == 1
        assert c.converted_this_week == 1
        assert c.converted_this_week_dollars == 500.0
        assert c.converted_today == 0
        assert c.future_conversions_excluded == 1

    def test_no_double_counting(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-07-01", "2025-07-01", "Converted", dollars=250),
        ])
        assert c.quotes_today == 1
        assert c.quotes_this_week == 1
        assert c.quotes_30_days == 1
        assert c.converted_today == 1
        assert c.converted_today_dollars == 250.0
        assert c.converted_this_week == 1
        assert c.converted_30_days == 1
        assert sum(c.sent_by_day.values()) == c.quotes_valid == 1
        assert sum(c.conversions_by_day.values()) == 1

    def test_dollars_added_once_per_bucket(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-07-01", "2025-07-01", "Converted", dollars=250),
            _quote("2", "2025-06-24", dollars=40),
        ])
        assert c.quotes_today_dollars == 250.0
        assert c.quotes_this_week_dollars == 250.0
        assert c.quotes_last_week_dollars == 40.0
        assert c.quotes_30_days_dollars == 290.0
        assert c.converted_today_dollars == 250.0
        assert c.converted_this_week_dollars == 250.0
        assert c.converted_30_days_dollars == 250.0

    def test_utc_conversion_before_local_midnight_counts_today(self, today):
        # 02:00Z on July 2nd is 22:00 on July 1st in New York
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-30", "2025-07-02T02:00:00Z", "Converted"),
        ])
        assert c.converted_today == 1
        assert c.converted_this_week == 1
        assert c.future_conversions_excluded == 0
        assert c.conversions_by_day == {date(2025, 7, 1): 1}

    def test_utc_conversion_after_local_midnight_is_excluded(self, today):
        # 05:00Z on July 2nd is 01:00 on July 2nd in New York
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-30", "2025-07-02T05:00:00Z", "Converted"),
        ])
        assert c.converted_today == 0
        assert c.converted_this_week == 0
        assert c.quotes_this_week_converted == 0
        assert c.future_conversions_excluded == 1
        assert not c.conversions_by_day
        verify_invariants(c)

    def test_no_conversion_counted_after_today(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-25", "2025-07-03", "Converted"),
            _quote("2", "2025-06-25", "2025-08-01", "Won"),
        ])
        assert c.converted_this_week == 0
        assert c.converted_30_days == 0
        assert c.quotes_30_days_converted == 0
        assert all(day <= today.date for day in c.conversions_by_day)
        assert c.future_conversions_excluded == 2

    def test_date_only_conversion_stays_on_its_calendar_day(self, today):
        c = _aggregate(today, quotes=[_quote("1", "2025-06-30", "2025-06-30", "Converted")])
        assert c.converted_today == 0
        assert c.converted_this_week == 1
        assert c.conversions_by_day == {date(2025, 6, 30): 1}

    def test_status_without_date_converts_by_send(self, today):
        c = _aggregate(today, quotes=[_quote("1", "2025-06-30", None, "Won")])
        assert c.quotes_this_week_converted == 1
        assert c.converted_this_week == 0

    def test_last_week_and_quarter(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-23", "2025-06-24", "Converted", dollars=400),
            _quote("2", "2025-06-27"),
            _quote("3", "2025-07-01", dollars=600),
        ])
        assert c.quotes_last_week == 2
        assert c.quotes_last_week_converted == 1
        assert c.quotes_this_quarter == 1
        assert c.value_sent_this_quarter == 600.0
        assert c.value_converted_this_quarter == 0.0

    def test_rolling_window_inclusive(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-01"),
            _quote("2", "2025-05-31"),
        ])
        assert c.quotes_30_days == 1

    def test_invalid_rows_counted_not_dropped(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", None),
            _quote("2", "2025-07-01", dollars="n/a"),
        ])
        assert c.quotes_seen == 2
        assert c.quotes_valid == 1
        assert c.money_fallbacks == 1
        assert c.records_seen == 2

    def test_salesperson_tallies(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-30", "2025-06-30", "Converted", dollars=500),
            _quote("2", "2025-06-10", "2025-06-12", "Converted", dollars=100,
                   salesperson="jared"),
            _quote("3", "2025-06-10", salesperson="Jared"),
        ])
        assert c.salespersons["Jared"].quotes_sent == 2
        assert c.salespersons["Jared"].quotes_converted == 1
        assert c.salespersons["Christian"].value_converted == 500.0
        assert set(c.salespersons_this_week) == {"Christian"}

    def test_recent_converted_newest_first_and_capped(self, today):
        c = _aggregate(today, quotes=[
            _quote("1", "2025-06-29", "2025-06-29", "Converted"),
            _quote("2", "2025-06-29", "2025-07-01", "Converted"),
            _quote("3", "2025-06-29", "2025-06-30", "Converted"),
        ], config={"recent_converted_limit": 2})
        assert [q.quote_number for q in c.recent_converted] == ["2", "3"]

    def test_effective_conversion(self, today):
        future = classify_quote(_quote("1", "2025-06-30", "2025-07-02", "Converted"), NY)
        past = classify_quote(_quote("2", "2025-06-30", "2025-06-30", "Converted"), NY)
        assert not effective_conversion(future, today)
        assert effective_conversion(past, today)


class TestOnTheBooks:
    def test_only_future_jobs_count(self, today):
        c = _aggregate(today, jobs=[
            _job("past", "2025-06-30", one_off=1000),
            _job("today", "2025-07-01", one_off=100),
            _job("later", "2025-07-03", visit=50),
            _job("aug", "2025-08-10", one_off=200),
        ])
        assert c.this_week_otb == 150.0
        assert c.this_month_otb == 150.0
        assert c.next_month_otb == 200.0
        assert c.otb_by_year == {2025: 350.0}
        assert c.otb_by_month == {"2025-07": 150.0, "2025-08": 200.0}

    def test_weekly_window_past_weeks_stay_zero(self, today):
        c = _aggregate(today, jobs=[
            _job("past", "2025-06-20", one_off=1000),
            _job("this", "2025-07-03", one_off=100),
            _job("far", "2025-08-10", one_off=200),
            _job("beyond", "2025-09-30", one_off=999),
        ])
        assert sorted(c.otb_by_week_offset) == list(range(-4, 7))
        assert all(c.otb_by_week_offset[o] == 0.0 for o in range(-4, 0))
        assert c.otb_by_week_offset[0] == 100.0
        assert c.otb_by_week_offset[6] == 200.0

    def test_recurring_revenue_next_year(self, today):
        c = _aggregate(today, jobs=[
            _job("r1", "2026-03-01", one_off=100, visit=50, job_type="RECURRING"),
            _job("o1", "2026-03-01", one_off=500, job_type="ONE_OFF"),
            _job("r0", "2025-09-01", one_off=70, job_type="RECURRING"),
        ])
        assert c.recurring_revenue_next_year == 150.0

    def test_late_jobs(self, today):
        c = _aggregate(today, jobs=[
            _job("late-old", "2025-06-10", one_off=10, converted="2025-06-01"),
            _job("late-new", "2025-06-20", one_off=10, converted="2025-06-01"),
            _job("unconverted", "2025-06-25", one_off=10),
            _job("upcoming", "2025-07-10", one_off=10, converted="2025-06-01"),
        ])
        assert [j.job_number for j in c.late_jobs] == ["late-new", "late-old"]


class TestSpeedToLead:
    def _rows(self, requested_on, sent):
        quotes = [_quote("500", sent)]
        requests = [{"quote_number": "500", "requested_on_date": requested_on}]
        return quotes, requests

    def test_valid_sample(self, today):
        quotes, requests = self._rows("2025-06-30T12:00:00Z", "2025-06-30T13:30:00Z")
        c = _aggregate(today, quotes=quotes, requests=requests)
        assert c.speed_to_lead_count == 1
        assert c.speed_to_lead_sum == 90.0
        assert c.speed_distribution["0-1440"] == 1
        assert c.salespersons["Christian"].speed_to_lead_count == 1

    def test_negative_sample_excluded(self, today):
        quotes, requests = self._rows("2025-06-30T15:00:00Z", "2025-06-30T13:00:00Z")
        c = _aggregate(today, quotes=quotes, requests=requests)
        assert c.speed_to_lead_count == 0
        assert c.speed_to_lead_invalid == 1

    def test_sample_over_cap_excluded(self, today):
        quotes, requests = self._rows("2025-06-20T12:00:00Z", "2025-06-28T12:00:00Z")
        c = _aggregate(today, quotes=quotes, requests=requests)
        assert c.speed_to_lead_count == 0
        assert c.speed_to_lead_invalid == 1

    def test_old_and_unmatched_requests_ignored(self, today):
        c = _aggregate(
            today,
            quotes=[_quote("500", "2025-05-02T12:00:00Z")],
            requests=[
                {"quote_number": "500", "requested_on_date": "2025-05-01T12:00:00Z"},
                {"quote_number": "999", "requested_on_date": "2025-06-30T12:00:00Z"},
                {"quote_number": "500"},
            ],
        )
        assert c.speed_to_lead_count == 0
        assert c.speed_to_lead_invalid == 0
        assert c.requests_seen == 3
        assert c.requests_valid == 2


class TestIdempotence:
    def test_same_input_same_counters(self, today, scenario_rows):
        first = _aggregate(today, quotes=scenario_rows["quotes"])
        second = _aggregate(today, quotes=scenario_rows["quotes"])
        assert first == second


class TestInvariants:
    def test_clean_counters_pass(self, today, scenario_rows):
        verify_invariants(_aggregate(today, quotes=scenario_rows["quotes"]))

    def test_today_exceeding_week_raises(self, today):
        counters = KpiCounters(today=today, config=dict(DEFAULT_CONFIG))
        counters.quotes_today = 2
        counters.quotes_this_week = 1
        with pytest.raises(InvariantViolationError) as exc:
            verify_invariants(counters)
        assert exc.value.details["lhs"] == 2

    def test_converted_exceeding_sent_raises(self, today):
        counters = KpiCounters(today=today, config=dict(DEFAULT_CONFIG))
        counters.quotes_30_days_converted = 1
        with pytest.raises(InvariantViolationError):
            verify_invariants(counters)

    def test_future_conversion_day_raises(self, today):
        counters = KpiCounters(today=today, config=dict(DEFAULT_CONFIG))
        counters.conversions_by_day[date(2025, 7, 2)] = 1
        with pytest.raises(InvariantViolationError):
            verify_invariants(counters)
