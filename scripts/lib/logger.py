"""
Centralized logging for the Jobber KPI Hub.
Provides consistent logging across all modules with console + daily file output.

Log timestamps and the daily file name use the business timezone
(LOG_TIMEZONE, falling back to BUSINESS_TIMEZONE).

Usage:
    from scripts.lib.logger import setup_logger
    logger = setup_logger(__name__)
    logger.info("Aggregation started")
"""
import logging
import os
import sys
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class BusinessTimeFormatter(logging.Formatter):
    """Formatter that stamps records in a fixed timezone rather than host time."""

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = DATE_FORMAT, tz: tzinfo = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.tz = tz or timezone.utc

    def formatTime(self, record: logging.LogRecord, datefmt: str = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=self.tz)
        return stamp.strftime(datefmt or self.datefmt)


def log_timezone(name: str = None) -> tzinfo:
    """Resolve the timezone used for log timestamps. Unknown names log in UTC."""
    name = name or os.getenv("LOG_TIMEZONE") or os.getenv("BUSINESS_TIMEZONE", "America/New_York")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def log_file_path(log_dir: Path = None, tz: tzinfo = None, now: datetime = None) -> Path:
    """Daily log file for the current business day."""
    tz = tz or log_timezone()
    now = (now or datetime.now(timezone.utc)).astimezone(tz)
    target_dir = Path(log_dir) if log_dir else LOG_DIR
    return target_dir / f"{now.strftime('%Y%m%d')}_kpi_hub.log"


def setup_logger(
    name: str,
    level: str = None,
    log_to_file: bool = None,
    log_dir: Path = None,
    tz: tzinfo = None,
) -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        name: Logger name (typically __name__ from calling module).
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to the LOG_LEVEL env var, then INFO.
        log_to_file: Whether to also log to a file. Defaults to the
            LOG_TO_FILE env var ("true" unless set otherwise).
        log_dir: Directory for log files (default: project_root/logs).
        tz: Timezone for timestamps (default: see ``log_timezone``).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    level = level or os.getenv("LOG_LEVEL", "INFO")
    if log_to_file is None:
        log_to_file = os.getenv("LOG_TO_FILE", "true").lower() == "true"
    tz = tz or log_timezone()

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = BusinessTimeFormatter(tz=tz)

    # Console handler
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG)
    console.setFormatter(formatter)
    logger.addHandler(console)

    # File handler
    if log_to_file:
        log_file = log_file_path(log_dir, tz)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
