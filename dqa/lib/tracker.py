"""Tracker issue views and the client capability the engines depend on.

The reconciliation engine never talks HTTP itself. It needs a client that
can list issues page by page, create an issue and add labels to one;
``dqa.lib.github.GitHubClient`` is the production implementation and tests
use an in-memory fake.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

__all__ = ["Issue", "IssueRequest", "TrackerClient"]


@dataclass
class Issue:
    """Read-only view of a tracker issue."""

    number: int
    title: str = ""
    labels: List[str] = field(default_factory=list)
    html_url: str = ""
    state: str = "open"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Issue":
        """Build from a GitHub REST issue payload."""
        labels = []
        for label in data.get("labels") or []:
            # GitHub returns label objects; older fixtures use bare names.
            labels.append(label["name"] if isinstance(label, dict) else str(label))

        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            labels=labels,
            html_url=data.get("html_url") or "",
            state=data.get("state") or "open",
        )


@dataclass
class IssueRequest:
    """Draft of an issue to create."""

    title: str
    body: str
    labels: List[str] = field(default_factory=list)

    def to_api(self) -> Dict[str, Any]:
        return {"title": self.title, "body": self.body, "labels": list(self.labels)}


class TrackerClient(Protocol):
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
        """Return one page of issues and the next page number (0 when done)."""
        ...

    def create_issue(self, owner: str, repo: str, request: IssueRequest) -> Issue:
        ...

    def add_labels(self, owner: str, repo: str, number: int, labels: Sequence[str]) -> List[str]:
        """Add labels to an issue and return the issue's full label set."""
        ...
