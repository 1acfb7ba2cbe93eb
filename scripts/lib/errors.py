"""
Custom error classes for the Jobber KPI Hub.
Structured error handling with error codes across all modules.

Hierarchy:
    KpiHubError
    └── DataError
        ├── ConfigError
        ├── DataFetchError
        └── InvariantViolationError

Row-level data defects (bad dates, non-numeric dollars) are never raised;
they are tagged on the classified record and counted in data quality.
"""


class KpiHubError(Exception):
    """Base exception for all KPI Hub errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- Data Errors ---

class DataError(KpiHubError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Fatal configuration error: the aggregation run must abort."""

    def __init__(self, message: str, setting: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"setting": setting},
        )


class DataFetchError(DataError):
    """Failed to fetch rows from the warehouse."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


class InvariantViolationError(DataError):
    """A computed counter broke a containment invariant."""

    def __init__(self, invariant: str, **values):
        super().__init__(
            f"Metrics invariant violated: {invariant}",
            code="INVARIANT_VIOLATION",
            details={"invariant": invariant, **values},
        )
