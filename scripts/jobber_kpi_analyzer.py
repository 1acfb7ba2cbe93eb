"""
Jobber KPI Analyzer
====================
Runs the full metrics pipeline for one reference instant:

    rows -> classifiers -> aggregator -> invariants -> roll-up -> KpiMetrics

Rows come either live from BigQuery or from the latest raw snapshots in
data/raw/ written by ``fetch_jobber.py``. The result is saved to
data/processed/jobber_kpi_metrics.json.

Exports:
    compute_counters, compute_metrics, load_raw_rows, run_kpi_analysis
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
RAW_DIR = BASE_DIR / "data" / "raw"
PROCESSED_DIR = BASE_DIR / "data" / "processed"
OUTPUT_FILE = "jobber_kpi_metrics.json"

if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

load_dotenv(BASE_DIR / ".env")

from models.kpi_models import KpiMetrics  # noqa: E402
from scripts.kpi.aggregator import (  # noqa: E402
    DEFAULT_CONFIG,
    KpiCounters,
    MetricsAggregator,
    verify_invariants,
)
from scripts.kpi.classifiers import classify_rows, normalize_salesperson  # noqa: E402
from scripts.kpi.reference_clock import (  # noqa: E402
    BUSINESS_TIMEZONE,
    BusinessToday,
    resolve_business_today,
)
from scripts.kpi.rollup import build_kpi_metrics  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.utils import atomic_write_json, find_latest_file, load_json  # noqa: E402

logger = setup_logger("jobber_kpi_analyzer")

RECORD_TYPES = ("quotes", "jobs", "requests")


# ---------------------------------------------------------------------------
# Data loading
# ---------------------------------------------------------------------------

def load_raw_rows(raw_dir: Path = RAW_DIR) -> Dict[str, List[Dict[str, Any]]]:
    """Latest raw snapshot for each record type; missing files load as empty."""
    rows: Dict[str, List[Dict[str, Any]]] = {}
    for record_type in RECORD_TYPES:
        path = find_latest_file(raw_dir, f"jobber_{record_type}_*.json")
        if path is None:
            logger.warning("No raw file found for '%s'; using an empty result set.", record_type)
            rows[record_type] = []
            continue
        logger.info("Loading %s from %s", record_type, path)
        rows[record_type] = load_json(path).get("results", [])
    return rows


def _fetch_rows(source: str) -> Dict[str, List[Dict[str, Any]]]:
    if source == "raw":
        return load_raw_rows()
    from scripts.fetch_jobber import fetch_dashboard_rows
    return fetch_dashboard_rows()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def compute_counters(
    rows: Dict[str, List[Dict[str, Any]]],
    today: BusinessToday,
    config: Optional[Dict[str, Any]] = None,
    salesperson: Optional[str] = None,
) -> KpiCounters:
    """Classify and aggregate raw rows, then check the counter invariants.

    When ``salesperson`` is given only that person's quotes and jobs are
    aggregated; requests then match only their quotes.
    """
    quotes, jobs, requests = classify_rows(
        rows.get("quotes", []), rows.get("jobs", []), rows.get("requests", []), today.tz,
    )
    if salesperson:
        name = normalize_salesperson(salesperson)
        quotes = [q for q in quotes if q.salesperson == name]
        jobs = [j for j in jobs if j.salesperson == name]
        logger.info("Filtered to salesperson %s: %d quotes, %d jobs", name, len(quotes), len(jobs))

    counters = MetricsAggregator(today, config).aggregate(quotes, jobs, requests)
    verify_invariants(counters)
    return counters


def compute_metrics(
    rows: Dict[str, List[Dict[str, Any]]],
    now: Any,
    config: Optional[Dict[str, Any]] = None,
    salesperson: Optional[str] = None,
    timezone_name: str = BUSINESS_TIMEZONE,
) -> KpiMetrics:
    """Full metrics object for the instant ``now`` (UTC)."""
    config = {**DEFAULT_CONFIG, **(config or {})}
    today = resolve_business_today(now, timezone_name)
    logger.info("Computing KPI metrics for %s (%s)", today.isoformat(), today.tz.key)

    counters = compute_counters(rows, today, config, salesperson)
    generated_at = now if isinstance(now, datetime) else None
    return build_kpi_metrics(
        counters, today, config,
        generated_at=generated_at,
        salesperson_filter=normalize_salesperson(salesperson) if salesperson else None,
    )


def run_kpi_analysis(
    now: Any = None,
    source: str = "bigquery",
    config: Optional[Dict[str, Any]] = None,
    salesperson: Optional[str] = None,
) -> Dict[str, Any]:
    """Load rows, compute every KPI and save the output.

    Returns the metrics as a camelCase JSON-ready dict.
    """
    config = {**DEFAULT_CONFIG, **(config or {})}
    now = now or datetime.now(timezone.utc)
    logger.info("Starting Jobber KPI analysis (source=%s)", source)

    rows = _fetch_rows(source)
    logger.info(
        "Loaded: %d quotes, %d jobs, %d requests",
        len(rows.get("quotes", [])), len(rows.get("jobs", [])), len(rows.get("requests", [])),
    )

    metrics = compute_metrics(rows, now, config, salesperson)
    output = metrics.model_dump(by_alias=True, mode="json")

    output_path = PROCESSED_DIR / OUTPUT_FILE
    if atomic_write_json(output, output_path):
        logger.info("Analysis complete. Output saved to %s", output_path)
    else:
        logger.error("Analysis complete but the output could not be saved to %s", output_path)
    return output


# ============================================================================
# Standalone entry point
# ============================================================================

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compute Jobber KPI dashboard metrics")
    parser.add_argument("--source", choices=["bigquery", "raw"], default="bigquery",
                        help="Read rows live from BigQuery or from data/raw snapshots")
    parser.add_argument("--now", default=None,
                        help="Reference instant as ISO-8601 (default: current UTC time)")
    parser.add_argument("--salesperson", default=None,
                        help="Only compute metrics for this salesperson")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = _parse_args()
    results = run_kpi_analysis(now=args.now, source=args.source, salesperson=args.salesperson)
    print(f"\nAnalysis complete. {results['recordsSeen']} records processed "
          f"for {results['referenceDate']}.")
    print(f"Output: {PROCESSED_DIR / OUTPUT_FILE}")
