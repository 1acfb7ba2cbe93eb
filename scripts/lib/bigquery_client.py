"""
BigQuery Client Helper for the Jobber KPI Hub.
Provides the warehouse connection and a retrying query helper.

Usage:
    from scripts.lib.bigquery_client import get_client, run_query, table_ref

    rows = run_query(f"SELECT * FROM {table_ref('v_quotes')}")
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery
from google.oauth2 import service_account
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scripts.lib.errors import ConfigError, DataFetchError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

BIGQUERY_SCOPES = ["https://www.googleapis.com/auth/bigquery"]

# Errors worth retrying: the warehouse was briefly unavailable
TRANSIENT_ERRORS = (
    gapi_exceptions.ServiceUnavailable,
    gapi_exceptions.InternalServerError,
    gapi_exceptions.TooManyRequests,
    gapi_exceptions.BadGateway,
)

_client = None


def get_settings() -> Dict[str, str]:
    """Warehouse settings from the environment, read at call time."""
    return {
        "project_id": os.environ.get("BIGQUERY_PROJECT_ID", ""),
        "dataset": os.environ.get("BIGQUERY_DATASET", "jobber_data"),
        "location": os.environ.get("BIGQUERY_LOCATION", "US"),
        "credentials_json": os.environ.get("GOOGLE_APPLICATION_CREDENTIALS_JSON", ""),
    }


def is_configured() -> bool:
    return bool(get_settings()["project_id"])


def _load_credentials(raw: str) -> Optional[service_account.Credentials]:
    """Service-account credentials from an inline JSON string, if provided."""
    if not raw:
        return None
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"GOOGLE_APPLICATION_CREDENTIALS_JSON is not valid JSON: {e}",
            setting="GOOGLE_APPLICATION_CREDENTIALS_JSON",
        )
    try:
        return service_account.Credentials.from_service_account_info(info, scopes=BIGQUERY_SCOPES)
    except (ValueError, KeyError) as e:
        raise ConfigError(
            f"Invalid service account credentials: {e}",
            setting="GOOGLE_APPLICATION_CREDENTIALS_JSON",
        )


def get_client() -> bigquery.Client:
    """Create and return a BigQuery client (singleton)."""
    global _client
    if _client is not None:
        return _client

    settings = get_settings()
    if not settings["project_id"]:
        raise ConfigError("BIGQUERY_PROJECT_ID must be set in .env", setting="BIGQUERY_PROJECT_ID")

    credentials = _load_credentials(settings["credentials_json"])
    # Without inline credentials, fall back to Application Default Credentials
    try:
        _client = bigquery.Client(
            project=settings["project_id"],
            credentials=credentials,
            location=settings["location"],
        )
    except auth_exceptions.DefaultCredentialsError as e:
        raise ConfigError(f"No BigQuery credentials available: {e}",
                          setting="GOOGLE_APPLICATION_CREDENTIALS_JSON")
    logger.info("BigQuery client connected to project %s", settings["project_id"])
    return _client


def reset_client() -> None:
    """Drop the cached client (used after settings change and in tests)."""
    global _client
    _client = None


def table_ref(view: str) -> str:
    """Fully-qualified, backtick-quoted reference to a dataset view."""
    settings = get_settings()
    return f"`{settings['project_id']}.{settings['dataset']}.{view}`"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)
def _execute(client: bigquery.Client, sql: str,
             job_config: Optional[bigquery.QueryJobConfig]) -> List[Dict[str, Any]]:
    job = client.query(sql, job_config=job_config)
    return [dict(row.items()) for row in job.result()]


def run_query(
    sql: str,
    params: Optional[List[bigquery.ScalarQueryParameter]] = None,
    source: str = "bigquery",
) -> List[Dict[str, Any]]:
    """
    Run a query and return rows as plain dicts.

    Transient Google API errors are retried; anything still failing is
    raised as ``DataFetchError``.

    Args:
        sql: Standard SQL text.
        params: Optional query parameters.
        source: Label used in logs and in the raised error.
    """
    client = get_client()
    job_config = bigquery.QueryJobConfig(
        query_parameters=params or [],
        labels={"app": "jobber_kpi_hub", "source": source.replace(".", "_").lower()},
    )
    try:
        rows = _execute(client, sql, job_config)
    except gapi_exceptions.GoogleAPIError as e:
        logger.error("BigQuery query failed for %s: %s", source, e)
        raise DataFetchError(f"BigQuery query failed: {e}", source=source)

    logger.debug("Fetched %d rows for %s", len(rows), source)
    return rows
