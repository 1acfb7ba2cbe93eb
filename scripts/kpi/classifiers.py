"""
Record Classifiers
===================
Normalize raw warehouse rows (quotes, jobs, requests) into canonical records.

Field names arrive in several casings (``sent_date`` / ``Sent_Date``,
``Job_type`` / ``job_type``...), dates arrive as DATE, TIMESTAMP or strings,
and dollar columns may be null or text. Every row is classified; a row that
cannot be parsed keeps null fields plus defect tags so the aggregator can
report seen-vs-valid counts instead of silently dropping it.

Conversion status is decided here and nowhere else.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from scripts.kpi.reference_clock import to_business_datetime

UNKNOWN_SALESPERSON = "Unknown"

JOB_TYPE_ONE_OFF = "ONE_OFF"
JOB_TYPE_RECURRING = "RECURRING"

# Defect tags
DEFECT_MISSING_SENT_DATE = "missing_sent_date"
DEFECT_BAD_SENT_DATE = "unparsable_sent_date"
DEFECT_BAD_CONVERTED_DATE = "unparsable_converted_date"
DEFECT_BAD_DOLLARS = "unparsable_dollars"
DEFECT_MISSING_JOB_DATE = "missing_job_date"
DEFECT_BAD_JOB_DATE = "unparsable_job_date"
DEFECT_MISSING_REQUEST_DATE = "missing_requested_on_date"
DEFECT_BAD_REQUEST_DATE = "unparsable_requested_on_date"


class ConversionStatus(str, Enum):
    """Status values that mean the customer accepted the quote."""
    CONVERTED = "converted"
    WON = "won"
    ACCEPTED = "accepted"
    COMPLETE = "complete"


_CONVERTED_STATUSES = {s.value for s in ConversionStatus}


def is_converted_status(status: Optional[str]) -> bool:
    """Case-insensitive check against ``ConversionStatus``."""
    if not status:
        return False
    return str(status).strip().lower() in _CONVERTED_STATUSES


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Quote:
    quote_number: Optional[str]
    salesperson: str
    status: str
    sent_date: Optional[date]
    sent_at: Optional[datetime]
    converted_date: Optional[date]
    total_dollars: float
    client_name: str = ""
    job_numbers: Optional[str] = None
    is_converted: bool = False
    defects: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.sent_date is not None


@dataclass
class Job:
    job_number: Optional[str]
    date: Optional[date]
    job_type: str
    one_off_dollars: float
    visit_based_dollars: float
    total_value: float
    date_converted: Optional[date] = None
    salesperson: str = UNKNOWN_SALESPERSON
    client_name: str = ""
    defects: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.date is not None


@dataclass
class Request:
    quote_number: Optional[str]
    requested_at: Optional[datetime]
    requested_date: Optional[date]
    defects: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.requested_at is not None


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _field(raw: Dict[str, Any], *names: str, default=None):
    """First non-empty value among ``names``, matched case-insensitively."""
    lowered = {str(k).lower(): v for k, v in raw.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value is not None and value != "":
            return value
    return default


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


_MONEY_STRIP = re.compile(r"[$,\s]")


def parse_money(value: Any) -> Tuple[float, bool]:
    """Parse a dollar amount.

    Returns ``(amount, fell_back)``. Missing values are a plain 0. Unparsable
    or negative values become 0 with ``fell_back`` set so the caller can
    count them.
    """
    if value is None or value == "":
        return 0.0, False
    if isinstance(value, dict):
        return parse_money(value.get("value"))
    if isinstance(value, bool):
        return 0.0, True
    try:
        if isinstance(value, str):
            amount = float(_MONEY_STRIP.sub("", value))
        else:
            amount = float(value)
    except (ValueError, TypeError):
        return 0.0, True
    if amount != amount or amount in (float("inf"), float("-inf")):
        return 0.0, True
    if amount < 0:
        return 0.0, True
    return amount, False


def normalize_salesperson(name: Any) -> str:
    """Trim, collapse whitespace and title-case; blank names become 'Unknown'."""
    text = _text(name)
    if not text:
        return UNKNOWN_SALESPERSON
    return " ".join(text.split()).title()


def _parse_date_field(value: Any, tz: ZoneInfo, missing_tag: Optional[str],
                      bad_tag: str, defects: List[str]) -> Optional[datetime]:
    if value is None:
        if missing_tag:
            defects.append(missing_tag)
        return None
    parsed = to_business_datetime(value, tz)
    if parsed is None:
        defects.append(bad_tag)
    return parsed


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------

def classify_quote(raw: Dict[str, Any], tz: ZoneInfo) -> Quote:
    """Normalize one quote row."""
    defects: List[str] = []

    sent_at = _parse_date_field(
        _field(raw, "sent_date", "sent_at"), tz,
        DEFECT_MISSING_SENT_DATE, DEFECT_BAD_SENT_DATE, defects,
    )
    converted_at = _parse_date_field(
        _field(raw, "converted_date", "date_converted"), tz,
        None, DEFECT_BAD_CONVERTED_DATE, defects,
    )
    dollars, fell_back = parse_money(
        _field(raw, "total_dollars", "value", "calculated_value")
    )
    if fell_back:
        defects.append(DEFECT_BAD_DOLLARS)

    status = _text(_field(raw, "status")) or "unknown"
    job_numbers = _field(raw, "job_numbers", "job_number")

    return Quote(
        quote_number=_text(_field(raw, "quote_number")),
        salesperson=normalize_salesperson(_field(raw, "salesperson", "sales_person")),
        status=status,
        sent_date=sent_at.date() if sent_at else None,
        sent_at=sent_at,
        converted_date=converted_at.date() if converted_at else None,
        total_dollars=dollars,
        client_name=_text(_field(raw, "client_name")) or "",
        job_numbers=_text(job_numbers),
        is_converted=is_converted_status(status) or converted_at is not None,
        defects=defects,
    )


def classify_job(raw: Dict[str, Any], tz: ZoneInfo) -> Job:
    """Normalize one job row.

    Job value is one-off dollars plus visit-based dollars; a legacy
    ``Calculated_Value`` column is used only when both components are absent.
    """
    defects: List[str] = []

    job_at = _parse_date_field(
        _field(raw, "date", "job_date", "scheduled_date"), tz,
        DEFECT_MISSING_JOB_DATE, DEFECT_BAD_JOB_DATE, defects,
    )
    converted_at = to_business_datetime(_field(raw, "date_converted", "converted_date"), tz)

    one_off_raw = _field(raw, "one_off_job_dollars", "one_off_dollars")
    visit_raw = _field(raw, "visit_based_dollars")
    one_off, one_off_fb = parse_money(one_off_raw)
    visit, visit_fb = parse_money(visit_raw)
    total = one_off + visit
    fell_back = one_off_fb or visit_fb
    if one_off_raw is None and visit_raw is None:
        total, fell_back = parse_money(_field(raw, "calculated_value", "value"))
    if fell_back:
        defects.append(DEFECT_BAD_DOLLARS)

    job_type = (_text(_field(raw, "job_type")) or JOB_TYPE_ONE_OFF).upper()

    return Job(
        job_number=_text(_field(raw, "job_number")),
        date=job_at.date() if job_at else None,
        job_type=job_type,
        one_off_dollars=one_off,
        visit_based_dollars=visit,
        total_value=total,
        date_converted=converted_at.date() if converted_at else None,
        salesperson=normalize_salesperson(_field(raw, "salesperson", "sales_person")),
        client_name=_text(_field(raw, "client_name")) or "",
        defects=defects,
    )


def classify_request(raw: Dict[str, Any], tz: ZoneInfo) -> Request:
    """Normalize one customer request row."""
    defects: List[str] = []
    requested_at = _parse_date_field(
        _field(raw, "requested_on_date", "requested_on"), tz,
        DEFECT_MISSING_REQUEST_DATE, DEFECT_BAD_REQUEST_DATE, defects,
    )
    return Request(
        quote_number=_text(_field(raw, "quote_number")),
        requested_at=requested_at,
        requested_date=requested_at.date() if requested_at else None,
        defects=defects,
    )


def classify_rows(
    quotes: List[Dict[str, Any]],
    jobs: List[Dict[str, Any]],
    requests: List[Dict[str, Any]],
    tz: ZoneInfo,
) -> Tuple[List[Quote], List[Job], List[Request]]:
    """Classify a full batch of raw rows."""
    return (
        [classify_quote(r, tz) for r in quotes],
        [classify_job(r, tz) for r in jobs],
        [classify_request(r, tz) for r in requests],
    )
