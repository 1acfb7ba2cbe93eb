"""
Roll-up Formatter
==================
Turns ``KpiCounters`` into the dashboard's ``KpiMetrics`` model: conversion
rates, salesperson leaderboards, chart series, the on-the-books window and
the quarter waterfall.

All series are built from the aggregator's daily tallies, so they agree with
the headline counters by construction.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.kpi_models import (
    ConvertedQuote,
    DataQuality,
    KpiMetrics,
    LateJob,
    SalespersonStats,
    TimeSeries,
    TimeSeriesSet,
    WaterfallStep,
    WeeklyOTB,
)
from scripts.kpi import date_buckets as buckets
from scripts.kpi.aggregator import DEFAULT_CONFIG, KpiCounters, SalespersonTally
from scripts.kpi.reference_clock import BusinessToday

JOBBER_JOB_URL = "https://secure.getjobber.com/jobs/{job_number}"

# (label, first day, last day) - both ends inclusive
DayRange = Tuple[str, date, date]


def conversion_rate(converted: int, sent: int) -> float:
    """Percentage rounded to one decimal; 0.0 when nothing was sent."""
    if not sent:
        return 0.0
    return round(converted / sent * 100, 1)


def _money(value: float) -> float:
    return round(value, 2)


def _avg_minutes(total: float, count: int) -> Optional[float]:
    if not count:
        return None
    return round(total / count, 1)


# ---------------------------------------------------------------------------
# Salespersons
# ---------------------------------------------------------------------------

def build_salesperson_rollup(
    stats: Dict[str, SalespersonTally], top_n: int = DEFAULT_CONFIG["salesperson_top_n"],
) -> List[SalespersonStats]:
    """Per-person stats, highest converted value first."""
    ranked = sorted(
        stats.values(),
        key=lambda s: (-s.value_converted, -s.quotes_converted, s.name),
    )
    return [
        SalespersonStats(
            name=s.name,
            quotes_sent=s.quotes_sent,
            quotes_converted=s.quotes_converted,
            conversion_rate=conversion_rate(s.quotes_converted, s.quotes_sent),
            value_sent=_money(s.value_sent),
            value_converted=_money(s.value_converted),
            avg_speed_to_lead_minutes=_avg_minutes(s.speed_to_lead_sum, s.speed_to_lead_count),
            speed_to_lead_samples=s.speed_to_lead_count,
        )
        for s in ranked[:top_n]
    ]


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------

def _sum_range(tally: Dict[date, int], start: date, end: date) -> int:
    return sum(n for day, n in tally.items() if start <= day <= end)


def build_series(counters: KpiCounters, ranges: Iterable[DayRange], period: str) -> TimeSeries:
    """Fold the daily tallies into one bucket per day range."""
    series = TimeSeries(period=period, records_seen=counters.quotes_seen)
    for label, start, end in ranges:
        sent = _sum_range(counters.sent_by_day, start, end)
        sent_converted = _sum_range(counters.sent_converted_by_day, start, end)
        series.labels.append(label)
        series.quotes_sent.append(sent)
        series.quotes_converted.append(sent_converted)
        series.conversions.append(_sum_range(counters.conversions_by_day, start, end))
        series.conversion_rate.append(conversion_rate(sent_converted, sent))
        series.total_sent += sent
        series.total_converted += sent_converted
    series.avg_conversion_rate = conversion_rate(series.total_converted, series.total_sent)
    return series


def week_ranges(today: BusinessToday, weeks: int = 6) -> List[DayRange]:
    """Last ``weeks`` Sunday-weeks, oldest first, ending with the current week."""
    current = buckets.week_start(today.date)
    ranges = []
    for back in range(weeks - 1, -1, -1):
        start = current - timedelta(days=7 * back)
        ranges.append((buckets.week_label(start), start, start + timedelta(days=6)))
    return ranges


def month_ranges(today: BusinessToday, windows: int = 4) -> List[DayRange]:
    """Last ``windows`` seven-day windows, the newest one ending today."""
    ranges = []
    for back in range(windows - 1, -1, -1):
        end = today.date - timedelta(days=7 * back)
        ranges.append((f"Week {windows - back}", end - timedelta(days=6), end))
    return ranges


def _month_range(year: int, month: int) -> Tuple[date, date]:
    ny, nm = buckets.next_month(year, month)
    return date(year, month, 1), date(ny, nm, 1) - timedelta(days=1)


def year_ranges(today: BusinessToday) -> List[DayRange]:
    """January through the current month."""
    ranges = []
    for month in range(1, today.month + 1):
        start, end = _month_range(today.year, month)
        ranges.append((buckets.MONTH_ABBR[month - 1], start, end))
    return ranges


def all_time_ranges(today: BusinessToday, launch: date) -> List[DayRange]:
    """Calendar months from the launch month through the current month."""
    ranges = []
    year, month = launch.year, launch.month
    while (year, month) <= (today.year, today.month):
        start, end = _month_range(year, month)
        ranges.append((f"{buckets.MONTH_ABBR[month - 1]} {year}", start, end))
        year, month = buckets.next_month(year, month)
    return ranges


def current_week_daily_ranges(today: BusinessToday) -> List[DayRange]:
    """Sunday through Saturday of the current week, labelled 'Mon 6/30'."""
    start = buckets.week_start(today.date)
    ranges = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        label = f"{buckets.WEEKDAY_ABBR[offset]} {day.month}/{day.day}"
        ranges.append((label, day, day))
    return ranges


def build_time_series(counters: KpiCounters, today: BusinessToday,
                      config: Dict[str, Any]) -> TimeSeriesSet:
    launch = date.fromisoformat(config["launch_date"])
    launch_label = f"{buckets.MONTH_ABBR[launch.month - 1]} {launch.year}"
    return TimeSeriesSet(
        week=build_series(counters, week_ranges(today), "Last 6 Weeks"),
        month=build_series(counters, month_ranges(today), "Last 4 Weeks"),
        year=build_series(counters, year_ranges(today), str(today.year)),
        all_time=build_series(counters, all_time_ranges(today, launch),
                              f"Since Launch ({launch_label})"),
        current_week_daily=build_series(counters, current_week_daily_ranges(today), "This Week"),
    )


# ---------------------------------------------------------------------------
# On the books, waterfall, lists
# ---------------------------------------------------------------------------

def build_weekly_otb_window(counters: KpiCounters, today: BusinessToday) -> List[WeeklyOTB]:
    current = buckets.week_start(today.date)
    window = []
    for offset in sorted(counters.otb_by_week_offset):
        start = current + timedelta(days=7 * offset)
        window.append(WeeklyOTB(
            week_offset=offset,
            week_start=start,
            label=buckets.week_label(start),
            amount=_money(counters.otb_by_week_offset[offset]),
        ))
    return window


def build_waterfall(counters: KpiCounters, today: BusinessToday) -> List[WaterfallStep]:
    """Quote value flow for the current quarter: sent, lost, converted."""
    sent = _money(counters.value_sent_this_quarter)
    converted = _money(counters.value_converted_this_quarter)
    not_converted = _money(sent - converted)
    quarter = f"Q{buckets.quarter_of(today.date)}"
    return [
        WaterfallStep(label=f"{quarter} Start", value=0.0, cumulative=0.0),
        WaterfallStep(label="Quotes Sent", value=sent, cumulative=sent),
        WaterfallStep(label="Not Converted", value=-not_converted, cumulative=converted),
        WaterfallStep(label="Converted", value=converted, cumulative=converted),
    ]


def build_late_jobs(counters: KpiCounters, today: BusinessToday,
                    limit: Optional[int] = None) -> List[LateJob]:
    jobs = counters.late_jobs if limit is None else counters.late_jobs[:limit]
    return [
        LateJob(
            job_number=job.job_number,
            client_name=job.client_name,
            scheduled_date=job.date,
            days_late=(today.date - job.date).days,
            job_type=job.job_type,
            value=_money(job.total_value),
            salesperson=job.salesperson,
            link_to_job=JOBBER_JOB_URL.format(job_number=job.job_number) if job.job_number else None,
        )
        for job in jobs
    ]


def _recent_converted(counters: KpiCounters) -> List[ConvertedQuote]:
    return [
        ConvertedQuote(
            quote_number=q.quote_number,
            client_name=q.client_name,
            salesperson=q.salesperson,
            total_dollars=_money(q.total_dollars),
            status=q.status,
            date_converted=q.converted_date,
        )
        for q in counters.recent_converted
    ]


def _data_quality(counters: KpiCounters) -> DataQuality:
    return DataQuality(
        total_quotes=counters.quotes_seen,
        valid_quotes=counters.quotes_valid,
        total_jobs=counters.jobs_seen,
        valid_jobs=counters.jobs_valid,
        total_requests=counters.requests_seen,
        valid_requests=counters.requests_valid,
        money_fallbacks=counters.money_fallbacks,
        future_conversions_excluded=counters.future_conversions_excluded,
        invalid_speed_to_lead_samples=counters.speed_to_lead_invalid,
    )


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------

def build_kpi_metrics(
    counters: KpiCounters,
    today: BusinessToday,
    config: Optional[Dict[str, Any]] = None,
    generated_at: Optional[datetime] = None,
    salesperson_filter: Optional[str] = None,
) -> KpiMetrics:
    """Assemble the full dashboard metrics object."""
    config = {**DEFAULT_CONFIG, **(config or {})}
    window = config["rolling_window_days"]
    c = counters

    return KpiMetrics(
        reference_date=today.date,
        timezone=str(today.tz.key),
        generated_at=generated_at or datetime.now(timezone.utc),
        records_seen=c.records_seen,
        salesperson_filter=salesperson_filter,

        quote_records_seen=c.quotes_seen,
        quotes_today=c.quotes_today,
        quotes_today_dollars=_money(c.quotes_today_dollars),
        converted_today=c.converted_today,
        converted_today_dollars=_money(c.converted_today_dollars),

        quotes_this_week=c.quotes_this_week,
        quotes_this_week_dollars=_money(c.quotes_this_week_dollars),
        converted_this_week=c.converted_this_week,
        converted_this_week_dollars=_money(c.converted_this_week_dollars),
        cvr_this_week=conversion_rate(c.quotes_this_week_converted, c.quotes_this_week),
        quotes_last_week=c.quotes_last_week,
        quotes_last_week_dollars=_money(c.quotes_last_week_dollars),
        cvr_last_week=conversion_rate(c.quotes_last_week_converted, c.quotes_last_week),

        quotes_30_days=c.quotes_30_days,
        quotes_30_days_dollars=_money(c.quotes_30_days_dollars),
        converted_30_days=c.converted_30_days,
        converted_30_days_dollars=_money(c.converted_30_days_dollars),
        cvr_30_days=conversion_rate(c.quotes_30_days_converted, c.quotes_30_days),
        avg_quotes_per_day_30_days=round(c.quotes_30_days / window, 1) if window else 0.0,

        speed_to_lead_records_seen=c.requests_seen,
        speed_to_lead_minutes_30_days=_avg_minutes(c.speed_to_lead_sum, c.speed_to_lead_count),
        speed_to_lead_samples=c.speed_to_lead_count,
        speed_distribution=dict(c.speed_distribution),

        otb_records_seen=c.jobs_seen,
        this_week_otb=_money(c.this_week_otb),
        this_month_otb=_money(c.this_month_otb),
        next_month_otb=_money(c.next_month_otb),
        otb_by_year={str(year): _money(v) for year, v in sorted(c.otb_by_year.items())},
        otb_by_month={key: _money(v) for key, v in sorted(c.otb_by_month.items())},
        weekly_otb_window=build_weekly_otb_window(c, today),
        recurring_revenue_next_year=_money(c.recurring_revenue_next_year),

        salespersons=build_salesperson_rollup(c.salespersons, config["salesperson_top_n"]),
        salespersons_this_week=build_salesperson_rollup(
            c.salespersons_this_week, config["salesperson_top_n"]
        ),

        time_series=build_time_series(c, today, config),
        waterfall=build_waterfall(c, today),
        recent_converted_quotes=_recent_converted(c),
        data_quality=_data_quality(c),
    )
