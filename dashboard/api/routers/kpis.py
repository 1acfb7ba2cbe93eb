"""
Jobber KPI Hub — KPI Router
=============================
Dashboard metrics computed live from the warehouse on every request.

Endpoints:
  GET /api/kpis/dashboard   - Full KPI metrics object (optional ?salesperson=)
  GET /api/kpis/late-jobs   - Jobs past their scheduled date, newest first
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from models.kpi_models import LateJobsResponse
from scripts.fetch_jobber import fetch_dashboard_rows
from scripts.jobber_kpi_analyzer import compute_counters, compute_metrics
from scripts.kpi.aggregator import DEFAULT_CONFIG
from scripts.kpi.reference_clock import BUSINESS_TIMEZONE, resolve_business_today
from scripts.kpi.rollup import build_late_jobs
from scripts.lib.errors import ConfigError, DataFetchError, InvariantViolationError
from scripts.lib.logger import setup_logger

logger = setup_logger("kpis_router")

router = APIRouter(prefix="/api/kpis", tags=["kpis"])


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _raise_http(e: Exception, what: str):
    """Map pipeline errors onto HTTP status codes."""
    if isinstance(e, DataFetchError):
        logger.error("%s: warehouse fetch failed: %s", what, e)
        raise HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ConfigError):
        logger.error("%s: configuration error: %s", what, e)
        raise HTTPException(status_code=500, detail=str(e))
    if isinstance(e, InvariantViolationError):
        logger.error("%s: %s (%s)", what, e, e.details)
        raise HTTPException(status_code=500, detail=str(e))
    raise e


@router.get("/dashboard")
async def dashboard(salesperson: Optional[str] = Query(None, description="Salesperson name")):
    """Full KPI metrics for the current business day."""
    now = _utc_now()
    try:
        rows = fetch_dashboard_rows()
        metrics = compute_metrics(rows, now, salesperson=salesperson)
    except (ConfigError, DataFetchError, InvariantViolationError) as e:
        _raise_http(e, "Dashboard metrics")
    return JSONResponse(content=metrics.model_dump(by_alias=True, mode="json"))


@router.get("/late-jobs")
async def late_jobs(limit: int = Query(DEFAULT_CONFIG["late_jobs_limit"], ge=1, le=500)):
    """Jobs dated before today that have a conversion date."""
    now = _utc_now()
    try:
        today = resolve_business_today(now, BUSINESS_TIMEZONE)
        rows = fetch_dashboard_rows()
        counters = compute_counters(rows, today, {"late_jobs_limit": limit})
    except (ConfigError, DataFetchError, InvariantViolationError) as e:
        _raise_http(e, "Late jobs")

    jobs = build_late_jobs(counters, today)
    response = LateJobsResponse(reference_date=today.date, late_jobs=jobs, total_count=len(jobs))
    return JSONResponse(content=response.model_dump(by_alias=True, mode="json"))
