"""
Jobber KPI Hub — API Server
=============================

Live API layer computing dashboard KPIs from the Jobber BigQuery views.
Every request fetches fresh rows and aggregates them against one reference
"today" in the business timezone.

Route groups:
  /api/health              - Health check
  /api/kpis/*              - Dashboard metrics and late jobs
"""

import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from dashboard.api.middleware import DashboardPasswordMiddleware  # noqa: E402
from dashboard.api.routers.kpis import router as kpis_router  # noqa: E402
from models.kpi_models import HealthResponse  # noqa: E402
from scripts.kpi.reference_clock import BUSINESS_TIMEZONE  # noqa: E402
from scripts.lib import bigquery_client  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402

logger = setup_logger("kpi_hub_api")

SERVICE_NAME = "Jobber KPI Hub"
VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting %s...", SERVICE_NAME)
    if bigquery_client.is_configured():
        logger.info("BigQuery project: %s", bigquery_client.get_settings()["project_id"])
    else:
        logger.warning("BIGQUERY_PROJECT_ID not set; KPI endpoints will fail until configured")
    if not os.getenv("DASHBOARD_PASSWORD"):
        logger.warning("DASHBOARD_PASSWORD not set; dashboard API is unprotected")
    logger.info("%s ready (timezone %s)", SERVICE_NAME, BUSINESS_TIMEZONE)
    yield
    logger.info("Shutting down %s...", SERVICE_NAME)


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")

app = FastAPI(
    title=SERVICE_NAME,
    version=VERSION,
    description="Small-business sales KPI dashboard backed by Jobber data in BigQuery",
    lifespan=lifespan,
)

app.add_middleware(DashboardPasswordMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)


# ─── Include Routers ──────────────────────────────────────────

app.include_router(kpis_router)


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"], response_model=HealthResponse)
async def health():
    """Health check with warehouse configuration status."""
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        version=VERSION,
        warehouse_configured=bigquery_client.is_configured(),
        timezone=BUSINESS_TIMEZONE,
    )
