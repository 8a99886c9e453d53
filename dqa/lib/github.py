"""GitHub REST client for the issue tracker capability.

Listing issues is an idempotent read and is retried with exponential backoff
on rate limiting, server errors and connection failures. Creating issues and
adding labels are sent once: a blind retry of a create that actually
succeeded would post a duplicate issue.

Example:
    with GitHubClient(token="${DQA_TOKEN}") as client:
        issues, next_page = client.list_issues(
            "PEDSnet", "CHOP", labels=["Data Quality"], per_page=100
        )
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import httpx
import requests_toolbelt
import tenacity
from requests_toolbelt.utils.user_agent import user_agent
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from dqa import __version__
from dqa.lib.env import expand_env_vars, unresolved_env_vars
from dqa.lib.errors import ConfigurationError, TrackerError
from dqa.lib.tracker import Issue, IssueRequest

logger = logging.getLogger(__name__)

__all__ = ["GitHubClient", "DEFAULT_BASE_URL"]

T = TypeVar("T")

DEFAULT_BASE_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_USER_AGENT = user_agent(
    "dqa-feedback",
    __version__,
    extras=[
        ("httpx", getattr(httpx, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
    ],
)


def _next_page(response: httpx.Response) -> int:
    """Read the next page number from the Link header (0 when absent)."""
    link = response.links.get("next")
    if not link or not link.get("url"):
        return 0
    page = httpx.URL(link["url"]).params.get("page")
    try:
        return int(page) if page else 0
    except ValueError:
        return 0


def _decode(response: httpx.Response, operation: str, build: Callable[[Any], T]) -> T:
    """Build a result from a successful response's JSON body.

    Raises:
        TrackerError: If the body is not JSON or lacks the expected fields
    """
    try:
        return build(response.json())
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise TrackerError(
            f"Unexpected response from GitHub: {response.request.method} {response.request.url.path}",
            operation=operation,
            status_code=response.status_code,
            cause=e,
        ) from e


class GitHubClient:
    """Synchronous GitHub issues client."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        token = expand_env_vars(token or "")
        if not token or unresolved_env_vars(token):
            raise ConfigurationError(
                "A token is required to access GitHub",
                field="token",
                suggestion="Pass --token or set DQA_TOKEN / GITHUB_TOKEN.",
            )

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": _USER_AGENT,
            },
            transport=transport,
        )

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def list_issues(
        self,
        owner: str,
        repo: str,
        *,
        state: str = "all",
        labels: Sequence[str] = (),
        page: Optional[int] = None,
        per_page: int = 100,
    ) -> Tuple[List[Issue], int]:
        params: Dict[str, Any] = {"state": state, "per_page": per_page}
        if labels:
            params["labels"] = ",".join(labels)
        if page:
            params["page"] = page

        endpoint = f"/repos/{owner}/{repo}/issues"
        response = self._get_with_retry(endpoint, params)

        issues = _decode(
            response, "list_issues", lambda data: [Issue.from_api(item) for item in data]
        )
        return issues, _next_page(response)

    def create_issue(self, owner: str, repo: str, request: IssueRequest) -> Issue:
        endpoint = f"/repos/{owner}/{repo}/issues"
        response = self._send("POST", endpoint, json=request.to_api(), operation="create_issue")
        return _decode(response, "create_issue", Issue.from_api)

    def add_labels(self, owner: str, repo: str, number: int, labels: Sequence[str]) -> List[str]:
        endpoint = f"/repos/{owner}/{repo}/issues/{number}/labels"
        response = self._send(
            "POST", endpoint, json={"labels": list(labels)}, operation="add_labels"
        )
        return _decode(
            response, "add_labels", lambda data: [label["name"] for label in data]
        )

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, endpoint)
        try:
            response = self._client.request(method, endpoint, json=json, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TrackerError(
                f"GitHub request failed: {method} {endpoint}",
                operation=operation,
                status_code=e.response.status_code,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise TrackerError(
                f"GitHub request failed: {method} {endpoint}",
                operation=operation,
                cause=e,
            ) from e
        return response

    def _get_with_retry(self, endpoint: str, params: Dict[str, Any]) -> httpx.Response:
        @retry(
            stop=stop_after_attempt(max(self.max_retries, 1)),
            wait=wait_exponential(multiplier=self.backoff_factor, min=0.5, max=30),
            retry=retry_if_exception(self._should_retry),
            reraise=True,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        def do_request() -> httpx.Response:
            logger.debug("Fetching %s with params %s", endpoint, params)
            response = self._client.get(endpoint, params=params)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 429:
                    self._respect_retry_after(exc.response)
                raise
            return response

        try:
            return do_request()
        except httpx.HTTPStatusError as e:
            raise TrackerError(
                f"GitHub request failed: GET {endpoint}",
                operation="list_issues",
                status_code=e.response.status_code,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise TrackerError(
                f"GitHub request failed: GET {endpoint}",
                operation="list_issues",
                cause=e,
            ) from e

    def _should_retry(self, exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in RETRYABLE_STATUS_CODES
        return isinstance(exc, httpx.RequestError)

    def _respect_retry_after(self, response: httpx.Response) -> None:
        retry_after = response.headers.get("Retry-After")
        if not retry_after:
            return
        try:
            wait_seconds = float(retry_after)
        except (TypeError, ValueError):
            return
        if wait_seconds > 0:
            logger.warning(
                "Rate limited by GitHub; sleeping %.1f seconds before retrying",
                wait_seconds,
            )
            time.sleep(wait_seconds)
