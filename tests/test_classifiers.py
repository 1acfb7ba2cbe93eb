"""Tests for raw-row classification."""

from datetime import date
from zoneinfo import ZoneInfo

import pytest

from scripts.kpi.classifiers import (
    DEFECT_BAD_DOLLARS,
    DEFECT_BAD_SENT_DATE,
    DEFECT_MISSING_SENT_DATE,
    JOB_TYPE_ONE_OFF,
    UNKNOWN_SALESPERSON,
    classify_job,
    classify_quote,
    classify_request,
    is_converted_status,
    normalize_salesperson,
    parse_money,
)

NY = ZoneInfo("America/New_York")


class TestParseMoney:
    @pytest.mark.parametrize("raw, expected", [
        (1250, (1250.0, False)),
        ("1250.50", (1250.5, False)),
        ("$1,250.50", (1250.5, False)),
        (None, (0.0, False)),
        ("", (0.0, False)),
        ("n/a", (0.0, True)),
        (-40, (0.0, True)),
        (float("nan"), (0.0, True)),
        (True, (0.0, True)),
    ])
    def test_parse_or_default(self, raw, expected):
        assert parse_money(raw) == expected


class TestStatusAndNames:
    def test_converted_statuses(self):
        for status in ("Converted", "won", " ACCEPTED ", "complete"):
            assert is_converted_status(status)
        for status in ("Awaiting Response", "Archived", "", None):
            assert not is_converted_status(status)

    def test_salesperson_normalized(self):
        assert normalize_salesperson("  christian   smith ") == "Christian Smith"
        assert normalize_salesperson("") == UNKNOWN_SALESPERSON
        assert normalize_salesperson(None) == UNKNOWN_SALESPERSON


class TestClassifyQuote:
    def test_field_names_are_case_insensitive(self):
        quote = classify_quote({
            "Quote_Number": 77, "SalesPerson": "jared", "Status": "Won",
            "Sent_Date": "2025-06-30", "Total_Dollars": "$900",
        }, NY)
        assert quote.quote_number == "77"
        assert quote.salesperson == "Jared"
        assert quote.sent_date == date(2025, 6, 30)
        assert quote.total_dollars == 900.0
        assert quote.is_converted
        assert quote.converted_date is None

    def test_conversion_date_implies_converted(self):
        quote = classify_quote({
            "sent_date": "2025-06-30", "converted_date": "2025-07-01",
            "status": "Awaiting Response",
        }, NY)
        assert quote.is_converted
        assert quote.converted_date == date(2025, 7, 1)

    def test_missing_sent_date_kept_with_defect(self):
        quote = classify_quote({"quote_number": "1", "status": "draft"}, NY)
        assert not quote.is_valid
        assert DEFECT_MISSING_SENT_DATE in quote.defects

    def test_bad_sent_date_and_dollars(self):
        quote = classify_quote({"sent_date": "yesterday-ish", "total_dollars": "lots"}, NY)
        assert quote.sent_date is None
        assert DEFECT_BAD_SENT_DATE in quote.defects
        assert DEFECT_BAD_DOLLARS in quote.defects
        assert quote.total_dollars == 0.0

    def test_sent_timestamp_keeps_time_for_speed_to_lead(self):
        quote = classify_quote({"sent_date": "2025-06-30T13:30:00Z"}, NY)
        assert quote.sent_at.hour == 9
        assert quote.sent_date == date(2025, 6, 30)


class TestClassifyJob:
    def test_value_is_one_off_plus_visit_based(self):
        job = classify_job({
            "Job_Number": "J1", "Date": "2025-07-03", "Job_type": "recurring",
            "One_off_job_dollars": "100", "Visit_based_dollars": 50,
        }, NY)
        assert job.total_value == 150.0
        assert job.job_type == "RECURRING"
        assert job.date == date(2025, 7, 3)

    def test_legacy_calculated_value_fallback(self):
        job = classify_job({"Date": "2025-07-03", "Calculated_Value": "275.25"}, NY)
        assert job.total_value == 275.25
        assert job.job_type == JOB_TYPE_ONE_OFF

    def test_components_win_over_calculated_value(self):
        job = classify_job({
            "Date": "2025-07-03", "One_off_job_dollars": 10, "Calculated_Value": 999,
        }, NY)
        assert job.total_value == 10.0

    def test_missing_date_is_invalid(self):
        job = classify_job({"Job_Number": "J2"}, NY)
        assert not job.is_valid
        assert job.defects


class TestClassifyRequest:
    def test_request_timestamp(self):
        request = classify_request(
            {"quote_number": "101", "requested_on_date": "2025-06-30T12:00:00Z"}, NY,
        )
        assert request.is_valid
        assert request.requested_date == date(2025, 6, 30)
        assert request.requested_at.hour == 8

    def test_missing_request_date(self):
        request = classify_request({"quote_number": "101"}, NY)
        assert not request.is_valid
