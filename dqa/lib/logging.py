"""Logging for DQA commands.

Records carry the scope they were produced in: the site, ETL version and
data cycle of the report, plus table, field and issue code when a single
finding is concerned. Text output keeps these in the message; the JSON
output (``--json-log``) lifts them to top-level keys so scheduled runs can
be filtered by site or issue code.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from dqa.lib.results import Finding

__all__ = [
    "SCOPE_FIELDS",
    "JSONFormatter",
    "ReportLogger",
    "get_dqa_logger",
    "setup_logging",
]

SCOPE_FIELDS = ("site", "etl_version", "data_cycle", "table", "field", "issue_code")

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formatter that outputs log records as JSON.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "ERROR",
         "logger": "dqa.lib.runner", "message": "Error publishing issue ...",
         "site": "CHOP", "table": "person", "issue_code": "g4-001"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: Dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if key in SCOPE_FIELDS:
                log_data[key] = value
            else:
                extra[key] = value
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReportLogger:
    """Logger that stamps a report's scope onto every record.

    Example:
        log = get_dqa_logger(__name__, site="CHOP", etl_version="ETLv11")
        log.info("Fetched %d issues", 42)
        log.for_finding(finding).error("Error publishing issue: %s", e)
    """

    def __init__(self, name: str, **scope: Any):
        self._logger = logging.getLogger(name)
        self._scope = {k: v for k, v in scope.items() if v is not None}

    def for_finding(self, finding: "Finding") -> "ReportLogger":
        """A logger for one finding, adding its table, field and issue code."""
        child = ReportLogger(self._logger.name, **self._scope)
        child._scope.update(
            table=finding.table, field=finding.field, issue_code=finding.issue_code
        )
        return child

    def _log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        extra = dict(self._scope)
        extra.update(kwargs.pop("extra", {}))
        self._logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)


def get_dqa_logger(name: str, **scope: Any) -> ReportLogger:
    """Get a logger for ``name`` bound to ``scope`` (site, etl_version, ...)."""
    return ReportLogger(name, **scope)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure logging for a command run.

    Logs go to stderr so that stdout stays free for output meant to be
    copied (summary bodies, fallback CSV rows).

    Args:
        verbose: Enable debug-level logging
        json_format: Use JSON output format (for log aggregation)
        log_file: Optional file path to write logs to
    """
    level = logging.DEBUG if verbose else logging.INFO

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Replace handlers from an earlier call
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Request lines are logged by the client at debug level already.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
