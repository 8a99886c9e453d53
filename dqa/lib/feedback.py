"""Reconciliation of findings with tracker issues.

Every actionable finding of a site's report has at most one tracker issue,
recorded in the finding's ``github_id``. The issue's labels carry the facts
the site and the DQA team edit on the tracker (cause and status) plus the
facts computed locally (table, rank, data cycle).

Two directions share this module:

- sync: pull cause/status from the labels of each finding's issue into the
  local finding.
- generate: draft an issue per actionable finding, post the ones that have no
  issue yet and add the current labels to the ones that do, then publish one
  summary issue per site and data cycle.

A report is bound to one site, ETL version and data cycle up front; findings
from anything else are rejected rather than silently mixed in.

Example:
    report = FeedbackReport("CHOP", "ETLv8", "April 2016", client)
    index = report.fetch_issue_index()
    result = report.sync(findings, index)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from dqa.lib.errors import (
    ConfigurationError,
    ConsistencyError,
    DQAError,
    SummaryAmbiguityError,
    TrackerError,
)
from dqa.lib.labels import (
    CAUSE,
    DATA_CYCLE,
    DATA_QUALITY,
    DATA_QUALITY_SUMMARY,
    RANK,
    STATUS,
    TABLE,
    decode_labels,
    encode_label,
)
from dqa.lib.logging import get_dqa_logger
from dqa.lib.markdown import MarkdownReport
from dqa.lib.pagination import PagePaginationState, PaginationConfig
from dqa.lib.results import Finding, Rank
from dqa.lib.tracker import Issue, IssueRequest, TrackerClient

__all__ = [
    "DEFAULT_OWNER",
    "FeedbackReport",
    "LabelChange",
    "SyncResult",
    "read_issue_facts",
]

DEFAULT_OWNER = "PEDSnet"
MODEL_NAME = "PEDSnet CDM"


def read_issue_facts(issue: Issue) -> Tuple[str, str]:
    """Return the ``(cause, status)`` recorded in an issue's labels.

    Missing facts are returned as empty strings.

    Raises:
        ConsistencyError: If the issue has more than one Cause or Status label
    """
    cause: Optional[str] = None
    status: Optional[str] = None

    for fact in decode_labels(issue.labels):
        if fact.is_kind(STATUS):
            if status is not None:
                raise ConsistencyError(
                    "Duplicate Status label on issue. Remove it and re-run.",
                    issue_url=issue.html_url or f"#{issue.number}",
                    details={"labels": ", ".join(issue.labels)},
                )
            status = fact.value
        elif fact.is_kind(CAUSE):
            if cause is not None:
                raise ConsistencyError(
                    "Duplicate Cause label on issue. Remove it and re-run.",
                    issue_url=issue.html_url or f"#{issue.number}",
                    details={"labels": ", ".join(issue.labels)},
                )
            cause = fact.value

    return cause or "", status or ""


@dataclass
class LabelChange:
    """A pending update of one finding attribute from tracker labels."""

    finding: Finding
    attribute: str  # "cause" or "status"
    old: str
    new: str

    def apply(self) -> None:
        setattr(self.finding, self.attribute, self.new)


@dataclass
class SyncResult:
    changes: List[LabelChange] = field(default_factory=list)
    skipped: int = 0

    @property
    def cause_changes(self) -> int:
        return sum(1 for c in self.changes if c.attribute == "cause")

    @property
    def status_changes(self) -> int:
        return sum(1 for c in self.changes if c.attribute == "status")

    def __len__(self) -> int:
        return len(self.changes)


class FeedbackReport:
    """Reconciles one site's findings with its tracker repository."""

    def __init__(
        self,
        site: str,
        etl_version: str,
        data_cycle: str,
        client: Optional[TrackerClient] = None,
        *,
        owner: str = DEFAULT_OWNER,
        pagination: Optional[PaginationConfig] = None,
    ) -> None:
        if not site or not etl_version:
            raise ConfigurationError(
                "Site and ETL version are required to bind a feedback report",
                details={"site": site, "etl_version": etl_version},
            )
        if not data_cycle:
            raise ConfigurationError(
                "The data cycle is required",
                field="cycle",
                suggestion="Supply it using the --cycle option.",
            )

        self.site = site
        self.etl_version = etl_version
        self.data_cycle = data_cycle
        self.owner = owner
        self.client = client
        self.pagination = pagination or PaginationConfig()

        # Every finding drafted as an issue, for the summary.
        self.findings: List[Finding] = []

        self.log = get_dqa_logger(
            __name__, site=site, etl_version=etl_version, data_cycle=data_cycle
        )

    def __len__(self) -> int:
        return len(self.findings)

    @property
    def repo(self) -> str:
        return self.site

    @property
    def cycle_label(self) -> str:
        return encode_label(DATA_CYCLE, self.data_cycle)

    def _require_client(self) -> TrackerClient:
        if self.client is None:
            raise ConfigurationError(
                "A tracker client is required for this operation",
                field="token",
                suggestion="Supply a token using the --token option.",
            )
        return self.client

    def check_scope(self, finding: Finding) -> None:
        """Reject findings that belong to another site or ETL version."""
        if finding.site != self.site or finding.etl_version != self.etl_version:
            raise ConsistencyError(
                "Result site or ETL version does not match the report",
                site=self.site,
                table=finding.table,
                details={
                    "data_version": finding.data_version,
                    "expected": f"{self.site} {self.etl_version}",
                },
                suggestion="Run each site and ETL version separately.",
            )

    def _list_all(self, labels: Sequence[str]) -> List[Issue]:
        client = self._require_client()
        state = PagePaginationState(self.pagination)
        issues: List[Issue] = []

        while state.should_fetch_more():
            params = state.build_params()
            page, next_page = client.list_issues(
                self.owner,
                self.repo,
                state="all",
                labels=list(labels),
                page=params.get("page"),
                per_page=params["per_page"],
            )
            issues.extend(page)
            self.log.debug("Fetched %d issues from %s", len(page), state.describe())
            if not state.on_response(next_page):
                break

        if state.max_pages_limit_hit:
            raise TrackerError(
                "Issue listing exceeded the page limit; refusing to use a partial index",
                operation="list_issues",
                details={"max_pages": self.pagination.max_pages},
            )

        return issues

    def fetch_issues(self) -> List[Issue]:
        """Fetch all Data Quality issues (open and closed) for this data cycle.

        Any failed page aborts the whole fetch.
        """
        return self._list_all([DATA_QUALITY, self.cycle_label])

    def fetch_issue_index(self) -> Dict[int, Issue]:
        index = {issue.number: issue for issue in self.fetch_issues()}
        self.log.info("Fetched %d issues.", len(index))
        return index

    def diff_finding(self, finding: Finding, index: Dict[int, Issue]) -> List[LabelChange]:
        """Compute the cause/status changes the tracker implies for a finding.

        Findings without a tracker id have nothing to sync.
        """
        if finding.github_id is None:
            return []

        self.check_scope(finding)

        issue = index.get(finding.github_id)
        if issue is None:
            raise ConsistencyError(
                f"Issue #{finding.github_id} is recorded for {finding} but does not exist "
                "on the tracker for this data cycle",
                site=self.site,
                table=finding.table,
            )

        cause, status = read_issue_facts(issue)

        changes = []
        if cause != finding.cause:
            changes.append(LabelChange(finding, "cause", finding.cause, cause))
        if status != finding.status:
            changes.append(LabelChange(finding, "status", finding.status, status))
        return changes

    def sync(self, findings: Sequence[Finding], index: Dict[int, Issue]) -> SyncResult:
        """Pull cause/status from the tracker into ``findings``.

        All changes are computed before any is applied, so a fatal error
        leaves every finding untouched.
        """
        result = SyncResult()
        for finding in findings:
            if finding.github_id is None:
                result.skipped += 1
                continue
            result.changes.extend(self.diff_finding(finding, index))

        for change in result.changes:
            self.log.info(
                "Changing %s %s %s -> %s", change.finding, change.attribute, change.old, change.new
            )
            change.apply()

        return result

    def issue_labels(self, finding: Finding) -> List[str]:
        labels = [DATA_QUALITY, self.cycle_label, encode_label(TABLE, finding.table)]

        if finding.rank > Rank.NONE:
            labels.append(encode_label(RANK, finding.rank))
        if finding.cause:
            labels.append(encode_label(CAUSE, finding.cause))
        if finding.status:
            labels.append(encode_label(STATUS, finding.status))

        return labels

    def build_issue(self, finding: Finding) -> IssueRequest:
        """Draft the tracker issue for a finding and remember it for the summary."""
        self.check_scope(finding)

        title = f"DQA: {self.data_cycle} ({self.etl_version}): {finding.table}/{finding.field}"
        body = f"**Description**: {finding.issue_description}\n**Finding**: {finding.finding}"

        request = IssueRequest(title=title, body=body, labels=self.issue_labels(finding))
        self.findings.append(finding)
        return request

    def ensure_labels(self, number: int, labels: Sequence[str]) -> List[str]:
        """Add labels to an existing issue; labels already present are kept."""
        client = self._require_client()
        return client.add_labels(self.owner, self.repo, number, labels)

    def post_issue(self, request: IssueRequest) -> Issue:
        """Create an issue. Not retried; failures propagate to the caller."""
        client = self._require_client()
        issue = client.create_issue(self.owner, self.repo, request)
        self.log.debug("Created issue #%d %s", issue.number, issue.html_url)
        return issue

    def summary_labels(self) -> List[str]:
        return [DATA_QUALITY, DATA_QUALITY_SUMMARY, self.cycle_label]

    def build_summary_issue(self) -> IssueRequest:
        """Draft the summary issue covering every finding drafted so far."""
        if not self.findings:
            raise DQAError("No issues were drafted; nothing to summarize", site=self.site)

        body = MarkdownReport(self.findings).to_string()
        model_version = self.findings[0].model_version

        title = f"DQA Summary: {self.data_cycle} ({self.etl_version}) for {MODEL_NAME} v{model_version}"
        return IssueRequest(title=title, body=body, labels=self.summary_labels())

    def fetch_summary_issue(self, request: IssueRequest) -> Optional[Issue]:
        """Find the already published summary issue, if any.

        Raises:
            SummaryAmbiguityError: If more than one issue carries the summary labels
        """
        issues = self._list_all(request.labels)

        if len(issues) > 1:
            raise SummaryAmbiguityError(
                "Multiple issues match:",
                urls=[issue.html_url or f"#{issue.number}" for issue in issues],
                site=self.site,
            )

        return issues[0] if issues else None
