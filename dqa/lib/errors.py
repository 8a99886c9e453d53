"""Structured exception hierarchy for DQA tooling.

Errors fall into two groups. Fatal errors (configuration, malformed input,
consistency violations) stop the run because they point at local files or
tracker state that was edited by hand and must not be repaired automatically.
Transport errors from the tracker are raised as ``TrackerError``; callers
decide whether a given one is fatal or only skips the current finding.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "DQAError",
    "ConfigurationError",
    "ResultsFormatError",
    "ConsistencyError",
    "SummaryAmbiguityError",
    "TrackerError",
]


class DQAError(Exception):
    """Base exception for all DQA errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        site: Optional[str] = None,
        table: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.site = site
        self.table = table
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if site or table:
            context = f"{site or '?'}.{table or '?'}"
            parts.insert(0, f"[{context}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self.args[0]) if self.args else "",
            "site": self.site,
            "table": self.table,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(DQAError):
    """Invalid or incomplete run configuration (flags, env, rule files)."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class ResultsFormatError(DQAError):
    """A results file or one of its values could not be parsed.

    Fatal for the enclosing file.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        value: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.path = path
        self.value = value

        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        if value is not None:
            details["value"] = repr(value)

        super().__init__(message, details=details, **kwargs)


class ConsistencyError(DQAError):
    """Local findings and tracker state disagree in a way that must not be guessed.

    Raised for a stored tracker id with no matching issue, duplicate
    Status/Cause labels on one issue, and findings that belong to a
    different site or ETL version than the one the run is bound to.
    """

    def __init__(
        self,
        message: str,
        *,
        issue_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.issue_url = issue_url

        details = kwargs.pop("details", {})
        if issue_url:
            details["issue"] = issue_url

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Fix the issue on the tracker or in the results file and re-run."

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class SummaryAmbiguityError(ConsistencyError):
    """More than one summary issue exists for a site and data cycle."""

    def __init__(
        self,
        message: str,
        *,
        urls: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.urls = urls or []

        if self.urls:
            url_lines = "\n".join(f"- {url}" for url in self.urls)
            message = f"{message}\n{url_lines}"

        kwargs.setdefault(
            "suggestion",
            "Close or relabel all but one summary issue, then re-run.",
        )

        super().__init__(message, **kwargs)


class TrackerError(DQAError):
    """A request to the issue tracker failed."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if status_code is not None:
            details["status_code"] = status_code
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)
