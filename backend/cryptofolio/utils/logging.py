# backend/cryptofolio/utils/logging.py
"""
Logging configuration for the portfolio analytics engine.

One stdout handler, two formats:
- text: pipe-separated, for local runs
- json: one object per line, for log aggregation

Every record carries the correlation ID of the unit of work that emitted
it (see utils.context) and the name of the thread it ran on. Report
sections and price lookups run on pool threads, so the thread name is
what tells concurrent sections apart within one correlation ID.

Usage:
    from cryptofolio.utils import setup_logging

    setup_logging()                     # settings.log_level / settings.log_format
    setup_logging(level="DEBUG")        # cache hits, per-symbol fallbacks

Log Levels:
    DEBUG   - Cache hits/misses, per-day valuation detail
    INFO    - Report assembled, holding recomputed, bulk run finished
    WARNING - Price fallbacks, degraded report sections, oversold holdings
    ERROR   - Failures requiring attention (provider down for a whole run)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from cryptofolio.config import settings
from cryptofolio.utils.context import get_correlation_id

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TEXT_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(threadName)s | %(name)s | %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "-"

# HTTP client internals log every request at DEBUG/INFO
NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "urllib3",
    "sqlalchemy.engine",
]

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# LogRecord attributes that are not user-supplied "extra" fields
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "correlation_id", "message", "taskName",
})


# =============================================================================
# FILTER & FORMATTER
# =============================================================================

class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the active correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class JsonFormatter(logging.Formatter):
    """
    Render records as single-line JSON.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123456+00:00",
        "level": "WARNING",
        "logger": "cryptofolio.services.valuation.history_calculator",
        "correlation_id": "report-3f2a9c1b7d4e",
        "thread": "analytics_1",
        "message": "No historical price for SOL on 2024-01-10, using cost basis",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                # Decimal, date and friends
                extra[key] = str(value)
        if extra:
            entry["extra"] = extra

        return json.dumps(entry)


# =============================================================================
# SETUP
# =============================================================================

def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure the root logger. Call once at process start.

    Args:
        level: Log level name. Defaults to settings.log_level.
        log_format: 'text' or 'json'. Defaults to settings.log_format.
        suppress_noisy_loggers: Raise third-party loggers to WARNING.

    Raises:
        ValueError: If the level name is not recognised
    """
    level_name = level or settings.log_level
    log_level = _get_log_level(level_name)
    format_type = (log_format or settings.log_format).lower()

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=DEFAULT_TEXT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={level_name}, format={format_type}",
        extra={"config": {"level": level_name, "format": format_type}},
    )


def _get_log_level(level_str: str) -> int:
    """Map a case-insensitive level name to its logging constant."""
    key = level_str.upper().strip()
    if key not in _LEVELS:
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {', '.join(_LEVELS)}"
        )
    return _LEVELS[key]
