"""Shared fixtures for the KPI tests."""

import os

# Keep test runs from writing daily log files
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest  # noqa: E402

from scripts.kpi.reference_clock import resolve_business_today  # noqa: E402

# Tuesday 2025-07-01, 12:00 in New York
NOW = "2025-07-01T16:00:00Z"


@pytest.fixture
def today():
    return resolve_business_today(NOW, "America/New_York")


@pytest.fixture
def scenario_rows():
    """Three quotes sent Monday 2025-06-30; one converted that day, one on 07-02."""
    return {
        "quotes": [
            {"quote_number": "101", "salesperson": "Christian", "status": "Converted",
             "sent_date": "2025-06-30", "converted_date": "2025-06-30", "total_dollars": 500},
            {"quote_number": "102", "salesperson": "Christian", "status": "Converted",
             "sent_date": "2025-06-30", "converted_date": "2025-07-02", "total_dollars": 300},
            {"quote_number": "103", "salesperson": "Jared", "status": "Awaiting Response",
             "sent_date": "2025-06-30", "converted_date": None, "total_dollars": 200},
        ],
        "jobs": [],
        "requests": [],
    }
