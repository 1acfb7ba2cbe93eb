"""
Metrics Aggregator
===================
Single-pass fold of classified quotes, jobs and requests into KPI counters,
all bucketed against one fixed ``BusinessToday``.

Policies enforced here:
    - A quote counts as converted as of today only if its conversion date
      (when present) is not after today. This is decided once per quote in
      ``effective_conversion`` and reused by every bucket.
    - Each quote increments each bucket it qualifies for exactly once.
    - On-the-books revenue only includes jobs dated today or later.
    - Speed-to-lead samples that are negative or implausibly long are
      excluded and counted, never replaced by a default.

Exports:
    DEFAULT_CONFIG, SalespersonTally, KpiCounters, MetricsAggregator,
    effective_conversion, verify_invariants
"""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from scripts.kpi import date_buckets as buckets
from scripts.kpi.classifiers import (
    DEFECT_BAD_DOLLARS,
    JOB_TYPE_RECURRING,
    Job,
    Quote,
    Request,
)
from scripts.kpi.reference_clock import BusinessToday
from scripts.lib.errors import InvariantViolationError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

# ---------------------------------------------------------------------------
# Default configuration
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: Dict[str, Any] = {
    "rolling_window_days": 30,
    "speed_to_lead_max_minutes": 10080,   # 7 days
    "salesperson_top_n": 10,
    "launch_date": "2025-03-01",
    "late_jobs_limit": 50,
    "recent_converted_limit": 20,
    "otb_weeks_before": 4,
    "otb_weeks_after": 6,
}

# Upper edges (minutes) of the speed-to-lead histogram buckets
SPEED_BUCKETS = [
    (1440, "0-1440"),        # under 24 hours
    (2880, "1440-2880"),
    (4320, "2880-4320"),
    (5760, "4320-5760"),
    (7200, "5760-7200"),
    (10080, "7200-10080"),
]


@dataclass
class SalespersonTally:
    name: str
    quotes_sent: int = 0
    quotes_converted: int = 0
    value_sent: float = 0.0
    value_converted: float = 0.0
    speed_to_lead_sum: float = 0.0
    speed_to_lead_count: int = 0


@dataclass
class KpiCounters:
    """Raw counters produced by one aggregation pass."""
    today: BusinessToday
    config: Dict[str, Any]

    # Sent, bucketed by send date
    quotes_today: int = 0
    quotes_today_dollars: float = 0.0
    quotes_this_week: int = 0
    quotes_this_week_dollars: float = 0.0
    quotes_last_week: int = 0
    quotes_last_week_dollars: float = 0.0
    quotes_30_days: int = 0
    quotes_30_days_dollars: float = 0.0
    quotes_this_quarter: int = 0
    value_sent_this_quarter: float = 0.0

    # Sent in bucket and converted as of today (CVR numerators)
    quotes_this_week_converted: int = 0
    quotes_last_week_converted: int = 0
    quotes_30_days_converted: int = 0
    quotes_this_quarter_converted: int = 0
    value_converted_this_quarter: float = 0.0

    # Converted, bucketed by conversion date
    converted_today: int = 0
    converted_today_dollars: float = 0.0
    converted_this_week: int = 0
    converted_this_week_dollars: float = 0.0
    converted_30_days: int = 0
    converted_30_days_dollars: float = 0.0

    # Daily tallies keyed by business-local date
    sent_by_day: Counter = field(default_factory=Counter)
    sent_converted_by_day: Counter = field(default_factory=Counter)
    conversions_by_day: Counter = field(default_factory=Counter)

    salespersons: Dict[str, SalespersonTally] = field(default_factory=dict)
    salespersons_this_week: Dict[str, SalespersonTally] = field(default_factory=dict)
    recent_converted: List[Quote] = field(default_factory=list)

    # On the books (future jobs only)
    this_week_otb: float = 0.0
    this_month_otb: float = 0.0
    next_month_otb: float = 0.0
    otb_by_year: Dict[int, float] = field(default_factory=lambda: defaultdict(float))
    otb_by_month: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    otb_by_week_offset: Dict[int, float] = field(default_factory=dict)
    recurring_revenue_next_year: float = 0.0
    late_jobs: List[Job] = field(default_factory=list)

    # Speed to lead
    speed_to_lead_sum: float = 0.0
    speed_to_lead_count: int = 0
    speed_to_lead_invalid: int = 0
    speed_distribution: Dict[str, int] = field(
        default_factory=lambda: {label: 0 for _, label in SPEED_BUCKETS}
    )

    # Data quality
    quotes_seen: int = 0
    quotes_valid: int = 0
    jobs_seen: int = 0
    jobs_valid: int = 0
    requests_seen: int = 0
    requests_valid: int = 0
    money_fallbacks: int = 0
    future_conversions_excluded: int = 0

    @property
    def records_seen(self) -> int:
        return self.quotes_seen + self.jobs_seen + self.requests_seen


def effective_conversion(quote: Quote, today: BusinessToday) -> bool:
    """Whether ``quote`` counts as converted as of ``today``."""
    if not quote.is_converted:
        return False
    if quote.converted_date is not None and quote.converted_date > today.date:
        return False
    return True


class MetricsAggregator:
    """Fold classified records into ``KpiCounters`` for one reference date."""

    def __init__(self, today: BusinessToday, config: Optional[Dict[str, Any]] = None):
        self.today = today
        self.config = {**DEFAULT_CONFIG, **(config or {})}

    def aggregate(
        self,
        quotes: Iterable[Quote],
        jobs: Iterable[Job],
        requests: Iterable[Request],
    ) -> KpiCounters:
        counters = KpiCounters(today=self.today, config=self.config)
        offsets = range(-self.config["otb_weeks_before"], self.config["otb_weeks_after"] + 1)
        counters.otb_by_week_offset = {offset: 0.0 for offset in offsets}

        quotes = list(quotes)
        for quote in quotes:
            self._fold_quote(counters, quote)

        quotes_by_number = {q.quote_number: q for q in quotes if q.quote_number}
        for request in requests:
            self._fold_request(counters, request, quotes_by_number)

        for job in jobs:
            self._fold_job(counters, job)

        counters.recent_converted.sort(
            key=lambda q: (q.converted_date or date.min), reverse=True,
        )
        del counters.recent_converted[self.config["recent_converted_limit"]:]
        counters.late_jobs.sort(key=lambda j: j.date, reverse=True)
        del counters.late_jobs[self.config["late_jobs_limit"]:]

        logger.info(
            "Aggregated %d quotes (%d valid), %d jobs (%d valid), %d requests (%d valid) "
            "for %s",
            counters.quotes_seen, counters.quotes_valid,
            counters.jobs_seen, counters.jobs_valid,
            counters.requests_seen, counters.requests_valid,
            self.today.isoformat(),
        )
        if counters.money_fallbacks:
            logger.warning("%d rows had unparsable dollar amounts (counted as 0)",
                           counters.money_fallbacks)
        if counters.future_conversions_excluded:
            logger.info("%d conversions dated after %s were excluded",
                        counters.future_conversions_excluded, self.today.isoformat())
        return counters

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def _tally_for(self, table: Dict[str, SalespersonTally], name: str) -> SalespersonTally:
        if name not in table:
            table[name] = SalespersonTally(name=name)
        return table[name]

    def _fold_quote(self, c: KpiCounters, quote: Quote) -> None:
        today = self.today
        window = self.config["rolling_window_days"]

        c.quotes_seen += 1
        if DEFECT_BAD_DOLLARS in quote.defects:
            c.money_fallbacks += 1

        converted = effective_conversion(quote, today)
        if quote.is_converted and not converted:
            c.future_conversions_excluded += 1

        dollars = quote.total_dollars
        sent = quote.sent_date

        if sent is not None:
            c.quotes_valid += 1
            c.sent_by_day[sent] += 1
            if converted:
                c.sent_converted_by_day[sent] += 1

            person = self._tally_for(c.salespersons, quote.salesperson)
            person.quotes_sent += 1
            person.value_sent += dollars
            if converted:
                person.quotes_converted += 1
                person.value_converted += dollars

            if buckets.is_same_day(sent, today):
                c.quotes_today += 1
                c.quotes_today_dollars += dollars

            if buckets.is_in_week(sent, today):
                c.quotes_this_week += 1
                c.quotes_this_week_dollars += dollars
                week_person = self._tally_for(c.salespersons_this_week, quote.salesperson)
                week_person.quotes_sent += 1
                week_person.value_sent += dollars
                if converted:
                    c.quotes_this_week_converted += 1
                    week_person.quotes_converted += 1
                    week_person.value_converted += dollars

            if buckets.is_in_last_week(sent, today):
                c.quotes_last_week += 1
                c.quotes_last_week_dollars += dollars
                if converted:
                    c.quotes_last_week_converted += 1

            if buckets.is_in_last_n_days(sent, today, window):
                c.quotes_30_days += 1
                c.quotes_30_days_dollars += dollars
                if converted:
                    c.quotes_30_days_converted += 1

            if buckets.is_in_quarter(sent, today):
                c.quotes_this_quarter += 1
                c.value_sent_this_quarter += dollars
                if converted:
                    c.quotes_this_quarter_converted += 1
                    c.value_converted_this_quarter += dollars

        conv_day = quote.converted_date
        if converted and conv_day is not None:
            c.conversions_by_day[conv_day] += 1
            if buckets.is_same_day(conv_day, today):
                c.converted_today += 1
                c.converted_today_dollars += dollars
            if buckets.is_in_week(conv_day, today):
                c.converted_this_week += 1
                c.converted_this_week_dollars += dollars
                c.recent_converted.append(quote)
            if buckets.is_in_last_n_days(conv_day, today, window):
                c.converted_30_days += 1
                c.converted_30_days_dollars += dollars

    # ------------------------------------------------------------------
    # Requests (speed to lead)
    # ------------------------------------------------------------------

    def _fold_request(self, c: KpiCounters, request: Request,
                      quotes_by_number: Dict[str, Quote]) -> None:
        c.requests_seen += 1
        if not request.is_valid:
            return
        c.requests_valid += 1

        if not buckets.is_in_last_n_days(request.requested_date, self.today,
                                         self.config["rolling_window_days"]):
            return
        quote = quotes_by_number.get(request.quote_number)
        if quote is None or quote.sent_at is None:
            return

        minutes = (quote.sent_at - request.requested_at).total_seconds() / 60.0
        if minutes < 0 or minutes >= self.config["speed_to_lead_max_minutes"]:
            c.speed_to_lead_invalid += 1
            logger.debug(
                "Excluded speed-to-lead sample for quote %s: %.0f minutes",
                request.quote_number, minutes,
            )
            return

        c.speed_to_lead_sum += minutes
        c.speed_to_lead_count += 1
        for upper, label in SPEED_BUCKETS:
            if minutes < upper:
                c.speed_distribution[label] += 1
                break

        person = self._tally_for(c.salespersons, quote.salesperson)
        person.speed_to_lead_sum += minutes
        person.speed_to_lead_count += 1
        if buckets.is_in_week(request.requested_date, self.today):
            week_person = self._tally_for(c.salespersons_this_week, quote.salesperson)
            week_person.speed_to_lead_sum += minutes
            week_person.speed_to_lead_count += 1

    # ------------------------------------------------------------------
    # Jobs (on the books)
    # ------------------------------------------------------------------

    def _fold_job(self, c: KpiCounters, job: Job) -> None:
        today = self.today
        c.jobs_seen += 1
        if DEFECT_BAD_DOLLARS in job.defects:
            c.money_fallbacks += 1
        if not job.is_valid:
            return
        c.jobs_valid += 1

        value = job.total_value

        if job.date < today.date and job.date_converted is not None:
            c.late_jobs.append(job)

        # Labelled "recurring" upstream, but the figure is the combined
        # one-off + visit-based value of RECURRING jobs next year.
        if job.job_type == JOB_TYPE_RECURRING and job.date.year == today.year + 1:
            c.recurring_revenue_next_year += value

        if not buckets.is_future_relative_to(job.date, today):
            return

        if buckets.is_in_week(job.date, today):
            c.this_week_otb += value
        if buckets.is_in_month(job.date, today):
            c.this_month_otb += value
        if buckets.is_in_next_month(job.date, today):
            c.next_month_otb += value
        c.otb_by_year[job.date.year] += value
        c.otb_by_month[buckets.month_key(job.date)] += value

        offset = buckets.week_offset(job.date, today)
        if offset in c.otb_by_week_offset:
            c.otb_by_week_offset[offset] += value


def verify_invariants(counters: KpiCounters) -> None:
    """Raise ``InvariantViolationError`` if a containment invariant is broken."""
    checks = [
        ("quotes_today <= quotes_this_week",
         counters.quotes_today, counters.quotes_this_week),
        ("quotes_this_week_converted <= quotes_this_week",
         counters.quotes_this_week_converted, counters.quotes_this_week),
        ("quotes_last_week_converted <= quotes_last_week",
         counters.quotes_last_week_converted, counters.quotes_last_week),
        ("quotes_30_days_converted <= quotes_30_days",
         counters.quotes_30_days_converted, counters.quotes_30_days),
        ("quotes_this_quarter_converted <= quotes_this_quarter",
         counters.quotes_this_quarter_converted, counters.quotes_this_quarter),
        ("converted_today <= converted_this_week",
         counters.converted_today, counters.converted_this_week),
        ("quotes_valid <= quotes_seen",
         counters.quotes_valid, counters.quotes_seen),
        ("jobs_valid <= jobs_seen",
         counters.jobs_valid, counters.jobs_seen),
        ("requests_valid <= requests_seen",
         counters.requests_valid, counters.requests_seen),
    ]
    for name, lhs, rhs in checks:
        if lhs > rhs:
            raise InvariantViolationError(name, lhs=lhs, rhs=rhs)

    late = [d for d in counters.conversions_by_day if d > counters.today.date]
    if late:
        raise InvariantViolationError(
            "no conversion dated after today",
            dates=[d.isoformat() for d in sorted(late)],
        )
    if counters.otb_by_week_offset and any(
        counters.otb_by_week_offset.get(offset, 0.0) for offset in range(-52, 0)
    ):
        raise InvariantViolationError("past weeks carry no on-the-books revenue")
