"""
Jobber KPI Hub — Dashboard Pydantic Models
============================================

Response schemas for the KPI dashboard. Field names are snake_case in
Python and serialize to the camelCase keys the frontend reads
(``model_dump(by_alias=True)``).
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: camelCase aliases, populated by field name."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Salesperson ───────────────────────────────────────────

class SalespersonStats(CamelModel):
    name: str
    quotes_sent: int = 0
    quotes_converted: int = 0
    conversion_rate: float = 0.0
    value_sent: float = 0.0
    value_converted: float = 0.0
    avg_speed_to_lead_minutes: Optional[float] = None
    speed_to_lead_samples: int = 0


# ─── Time Series ───────────────────────────────────────────

class TimeSeries(CamelModel):
    """One chart series. Every list is aligned with ``labels``."""
    labels: List[str] = Field(default_factory=list)
    quotes_sent: List[int] = Field(default_factory=list)
    quotes_converted: List[int] = Field(default_factory=list)
    conversions: List[int] = Field(default_factory=list)
    conversion_rate: List[float] = Field(default_factory=list)
    total_sent: int = 0
    total_converted: int = 0
    avg_conversion_rate: float = 0.0
    period: str
    records_seen: int = 0


class TimeSeriesSet(CamelModel):
    week: TimeSeries
    month: TimeSeries
    year: TimeSeries
    all_time: TimeSeries = Field(alias="all")
    current_week_daily: TimeSeries


# ─── On The Books ──────────────────────────────────────────

class WeeklyOTB(CamelModel):
    week_offset: int
    week_start: date
    label: str
    amount: float = 0.0


class WaterfallStep(CamelModel):
    label: str
    value: float
    cumulative: float


# ─── Quotes & Jobs ─────────────────────────────────────────

class ConvertedQuote(CamelModel):
    quote_number: Optional[str] = None
    client_name: str = ""
    salesperson: str
    total_dollars: float = 0.0
    status: str
    date_converted: Optional[date] = None


class LateJob(CamelModel):
    job_number: Optional[str] = None
    client_name: str = ""
    scheduled_date: date
    days_late: int
    job_type: str
    value: float = 0.0
    salesperson: str
    link_to_job: Optional[str] = None


class LateJobsResponse(CamelModel):
    reference_date: date
    late_jobs: List[LateJob] = Field(default_factory=list)
    total_count: int = 0


# ─── Data Quality ──────────────────────────────────────────

class DataQuality(CamelModel):
    total_quotes: int = 0
    valid_quotes: int = 0
    total_jobs: int = 0
    valid_jobs: int = 0
    total_requests: int = 0
    valid_requests: int = 0
    money_fallbacks: int = 0
    future_conversions_excluded: int = 0
    invalid_speed_to_lead_samples: int = 0


# ─── Dashboard ─────────────────────────────────────────────

class KpiMetrics(CamelModel):
    """Full metrics object for one reference date."""
    reference_date: date
    timezone: str
    generated_at: datetime
    records_seen: int = 0
    salesperson_filter: Optional[str] = None

    # Quote buckets
    quote_records_seen: int = 0
    quotes_today: int = 0
    quotes_today_dollars: float = 0.0
    converted_today: int = 0
    converted_today_dollars: float = 0.0

    quotes_this_week: int = 0
    quotes_this_week_dollars: float = 0.0
    converted_this_week: int = 0
    converted_this_week_dollars: float = 0.0
    cvr_this_week: float = 0.0
    quotes_last_week: int = 0
    quotes_last_week_dollars: float = 0.0
    cvr_last_week: float = 0.0

    quotes_30_days: int = Field(0, alias="quotes30Days")
    quotes_30_days_dollars: float = Field(0.0, alias="quotes30DaysDollars")
    converted_30_days: int = Field(0, alias="converted30Days")
    converted_30_days_dollars: float = Field(0.0, alias="converted30DaysDollars")
    cvr_30_days: float = Field(0.0, alias="cvr30Days")
    avg_quotes_per_day_30_days: float = Field(0.0, alias="avgQuotesPerDay30Days")

    # Speed to lead
    speed_to_lead_records_seen: int = 0
    speed_to_lead_minutes_30_days: Optional[float] = Field(None, alias="speedToLeadMinutes30Days")
    speed_to_lead_samples: int = 0
    speed_distribution: Dict[str, int] = Field(default_factory=dict)

    # On the books
    otb_records_seen: int = Field(0, alias="otbRecordsSeen")
    this_week_otb: float = Field(0.0, alias="thisWeekOTB")
    this_month_otb: float = Field(0.0, alias="thisMonthOTB")
    next_month_otb: float = Field(0.0, alias="nextMonthOTB")
    otb_by_year: Dict[str, float] = Field(default_factory=dict)
    otb_by_month: Dict[str, float] = Field(default_factory=dict)
    weekly_otb_window: List[WeeklyOTB] = Field(default_factory=list, alias="weeklyOTBWindow")
    recurring_revenue_next_year: float = 0.0

    salespersons: List[SalespersonStats] = Field(default_factory=list)
    salespersons_this_week: List[SalespersonStats] = Field(default_factory=list)

    time_series: TimeSeriesSet
    waterfall: List[WaterfallStep] = Field(default_factory=list)
    recent_converted_quotes: List[ConvertedQuote] = Field(default_factory=list)
    data_quality: DataQuality = Field(default_factory=DataQuality)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    warehouse_configured: bool
    timezone: str
