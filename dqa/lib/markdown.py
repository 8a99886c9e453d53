"""Markdown rendering of findings for the tracker summary issue."""

from __future__ import annotations

from collections import Counter
from io import StringIO
from typing import IO, Iterable, List

from dqa.lib.results import Finding, Rank

__all__ = ["MarkdownReport"]

_HEADER = ["Table", "Field", "Issue Code", "Prevalence", "Finding", "Cause", "Status", "Issue"]


def _cell(value: str) -> str:
    return str(value).replace("|", "\\|").replace("\r", " ").replace("\n", " ").strip()


class MarkdownReport:
    """Findings grouped by rank, highest first, as Markdown tables."""

    def __init__(self, findings: Iterable[Finding]) -> None:
        self.findings: List[Finding] = list(findings)

    def render(self, out: IO[str]) -> None:
        counts = Counter(f.rank for f in self.findings)
        tables = sorted({f.table for f in self.findings})

        out.write(
            f"{len(self.findings)} issues were found across {len(tables)} tables.\n\n"
        )

        out.write("| Rank | Issues |\n|---|---|\n")
        for rank in sorted(Rank, reverse=True):
            out.write(f"| {str(rank) or 'Unranked'} | {counts.get(rank, 0)} |\n")

        for rank in sorted(Rank, reverse=True):
            group = sorted(
                (f for f in self.findings if f.rank == rank),
                key=lambda f: (f.table, f.field, f.issue_code),
            )
            if not group:
                continue

            out.write(f"\n## {str(rank) or 'Unranked'}\n\n")
            out.write("| " + " | ".join(_HEADER) + " |\n")
            out.write("|" + "---|" * len(_HEADER) + "\n")

            for f in group:
                issue = f"#{f.github_id}" if f.github_id is not None else ""
                cells = [
                    f.table,
                    f.field,
                    f.issue_code,
                    f.prevalence,
                    f.finding,
                    f.cause,
                    f.status,
                    issue,
                ]
                out.write("| " + " | ".join(_cell(c) for c in cells) + " |\n")

    def to_string(self) -> str:
        buf = StringIO()
        self.render(buf)
        return buf.getvalue()
