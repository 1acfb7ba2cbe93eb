"""
Jobber Warehouse Data Fetcher
=============================

Pulls quotes, jobs and customer requests from the BigQuery views that the
Jobber sync maintains (``v_quotes``, ``v_jobs``, ``v_requests``).

Rows are returned untouched; normalization happens in the KPI classifiers.
Run directly to snapshot the rows into ``data/raw/``.
"""

import sys
import time
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

load_dotenv(BASE_DIR / ".env")

from scripts.lib.bigquery_client import run_query, table_ref  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.utils import atomic_write_json  # noqa: E402

logger = setup_logger("fetch_jobber")

RAW_DIR = BASE_DIR / "data" / "raw"

QUOTES_SQL = """
    SELECT
      quote_number,
      client_name,
      salesperson,
      status,
      total_dollars,
      sent_date,
      converted_date,
      job_numbers
    FROM {table}
    WHERE sent_date IS NOT NULL
    ORDER BY sent_date DESC
"""

JOBS_SQL = """
    SELECT
      Job_Number,
      Client_Name,
      Date,
      Date_Converted,
      SalesPerson,
      Job_type,
      One_off_job_dollars,
      Visit_based_dollars
    FROM {table}
    WHERE Date IS NOT NULL
    ORDER BY Date
"""

REQUESTS_SQL = """
    SELECT
      quote_number,
      requested_on_date
    FROM {table}
    WHERE requested_on_date IS NOT NULL
"""


def fetch_quotes() -> List[Dict[str, Any]]:
    rows = run_query(QUOTES_SQL.format(table=table_ref("v_quotes")), source="v_quotes")
    logger.info("Fetched %d quotes", len(rows))
    return rows


def fetch_jobs() -> List[Dict[str, Any]]:
    rows = run_query(JOBS_SQL.format(table=table_ref("v_jobs")), source="v_jobs")
    logger.info("Fetched %d jobs", len(rows))
    return rows


def fetch_requests() -> List[Dict[str, Any]]:
    rows = run_query(REQUESTS_SQL.format(table=table_ref("v_requests")), source="v_requests")
    logger.info("Fetched %d requests", len(rows))
    return rows


def fetch_dashboard_rows() -> Dict[str, List[Dict[str, Any]]]:
    """All three record sets the dashboard needs, keyed by record type."""
    return {
        "quotes": fetch_quotes(),
        "jobs": fetch_jobs(),
        "requests": fetch_requests(),
    }


def _write_raw(name: str, date_stamp: str, data: List[Dict[str, Any]]) -> bool:
    payload = {
        "source": "jobber",
        "object_type": name.replace("jobber_", ""),
        "captured_at": date_stamp,
        "record_count": len(data),
        "results": data,
    }
    out_path = RAW_DIR / f"{name}_{date_stamp}.json"
    ok = atomic_write_json(payload, out_path, indent=None)
    if ok:
        logger.info("Saved %s: %d records -> %s", name, len(data), out_path)
    return ok


def fetch_jobber() -> bool:
    """Main entry: fetch all Jobber rows and write them to raw JSON files."""
    logger.info("Starting Jobber warehouse extraction")
    date_stamp = time.strftime("%Y-%m-%d")

    rows = fetch_dashboard_rows()
    results = [_write_raw(f"jobber_{name}", date_stamp, data) for name, data in rows.items()]

    logger.info("Jobber extraction complete")
    return all(results)


if __name__ == "__main__":
    try:
        sys.exit(0 if fetch_jobber() else 1)
    except Exception as e:
        logger.error("Jobber extraction failed: %s", e, exc_info=True)
        sys.exit(1)
