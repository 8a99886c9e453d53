"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dqa.lib.errors import TrackerError  # noqa: E402
from dqa.lib.results import Finding, Rank, write_results  # noqa: E402
from dqa.lib.tracker import Issue, IssueRequest  # noqa: E402

DATA_VERSION = "pedsnet-2.3.0-CHOP-ETLv11"


def build_finding(**overrides) -> Finding:
    values = {
        "model_version": "2.3.0",
        "data_version": DATA_VERSION,
        "dqa_version": "0",
        "table": "person",
        "field": "person_id",
        "goal": "Completeness",
        "issue_code": "g4-001",
        "issue_description": "Missing expected records",
        "finding": "12 persons without visits",
        "prevalence": "high",
        "rank": Rank.NONE,
    }
    values.update(overrides)
    return Finding(**values)


def write_findings(path: Path, findings: Sequence[Finding]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as handle:
        write_results(handle, findings)
    return path


class FakeTracker:
    """In-memory TrackerClient.

    Issues are kept per ``(owner, repo)``. Listing filters on labels (an issue
    must carry all of them) and pages by ``per_page``.
    """

    def __init__(self) -> None:
        self.issues: Dict[Tuple[str, str], List[Issue]] = {}
        self.created: List[IssueRequest] = []
        self.labeled: List[Tuple[int, List[str]]] = []
        self.list_calls: List[Dict[str, object]] = []
        self.fail_titles: Set[str] = set()
        self.fail_list = False
        self.fail_labels: Set[int] = set()
        self._next_number = 1

    def add_issue(
        self,
        labels: Sequence[str],
        *,
        owner: str = "PEDSnet",
        repo: str = "CHOP",
        number: Optional[int] = None,
        title: str = "",
        state: str = "open",
    ) -> Issue:
        if number is None:
            number = self._next_number
        self._next_number = max(self._next_number, number + 1)
        issue = Issue(
            number=number,
            title=title,
            labels=list(labels),
            html_url=f"https://github.com/{owner}/{repo}/issues/{number}",
            state=state,
        )
        self.issues.setdefault((owner, repo), []).append(issue)
        return issue

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
        self.list_calls.append({"owner": owner, "repo": repo, "labels": list(labels), "page": page})
        if self.fail_list:
            raise TrackerError("listing failed", operation="list_issues", status_code=502)

        matching = [
            issue
            for issue in self.issues.get((owner, repo), [])
            if all(label in issue.labels for label in labels)
            and (state == "all" or issue.state == state)
        ]
        page = page or 1
        start = (page - 1) * per_page
        chunk = matching[start : start + per_page]
        next_page = page + 1 if start + per_page < len(matching) else 0
        return chunk, next_page

    def create_issue(self, owner: str, repo: str, request: IssueRequest) -> Issue:
        if any(t in request.title for t in self.fail_titles):
            raise TrackerError("create failed", operation="create_issue", status_code=500)
        self.created.append(request)
        return self.add_issue(request.labels, owner=owner, repo=repo, title=request.title)

    def add_labels(self, owner: str, repo: str, number: int, labels: Sequence[str]) -> List[str]:
        if number in self.fail_labels:
            raise TrackerError("labeling failed", operation="add_labels", status_code=502)
        for issue in self.issues.get((owner, repo), []):
            if issue.number == number:
                for label in labels:
                    if label not in issue.labels:
                        issue.labels.append(label)
                self.labeled.append((number, list(labels)))
                return list(issue.labels)
        raise TrackerError("issue not found", operation="add_labels", status_code=404)


@pytest.fixture
def make_finding():
    """Factory for findings of CHOP ETLv11."""
    return build_finding


@pytest.fixture
def write_results_file():
    """Write findings to a results CSV."""
    return write_findings


@pytest.fixture
def tracker():
    """Provide an empty in-memory tracker."""
    return FakeTracker()


@pytest.fixture
def report_dir(tmp_path):
    """Provide an empty site report directory."""
    path = tmp_path / "SecondaryReports" / "CHOP" / "ETLv11"
    path.mkdir(parents=True)
    return path
