"""Rank classification of findings.

Rules are grouped into scopes (Administrative, Demographic, Fact), each
covering a set of tables. A finding is classified by the first scope, in
declaration order, whose tables contain the finding's table; a later scope is
never consulted even when no rule inside the selected one matches.

Inside a scope, rank tables are tried in declaration order. A table applies
when all of its guard conditions hold. An applying table is looked up by
``(issue code, prevalence)``, both lowercased; a hit is the answer and a miss
moves on to the next table of the same scope.

Findings whose status is "persistent" are never classified.

Example:
    classifier = RankClassifier(default_rules())
    rank, matched = classifier.classify(finding)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from dqa.lib.conditions import Condition, is_persistent
from dqa.lib.results import Finding, Rank

__all__ = [
    "RankAssignment",
    "RankChange",
    "RankClassifier",
    "RankMatch",
    "RankRules",
    "RankTable",
    "RuleScope",
    "apply_ranks",
]

RankKey = Tuple[str, str]
RankRow = Tuple[str, str, Rank]


@dataclass(frozen=True)
class RankTable:
    """A guarded lookup from (issue code, prevalence) to rank."""

    conditions: Tuple[Condition, ...]
    ranks: Mapping[RankKey, Rank]

    @classmethod
    def build(cls, conditions: Iterable[Condition], rows: Iterable[RankRow]) -> "RankTable":
        """Build a table from ordered rows; a repeated key keeps its first rank."""
        ranks = {}
        for issue_code, prevalence, rank in rows:
            key = (issue_code.lower(), prevalence.lower())
            ranks.setdefault(key, Rank(rank))
        return cls(tuple(conditions), MappingProxyType(ranks))

    def applies(self, finding: Finding) -> bool:
        return all(condition(finding) for condition in self.conditions)

    def lookup(self, finding: Finding) -> Optional[Rank]:
        key = (finding.issue_code.lower(), finding.prevalence.lower())
        return self.ranks.get(key)


@dataclass(frozen=True)
class RuleScope:
    """Ordered rank tables for one subject area."""

    name: str
    tables: Tuple[str, ...]
    rules: Tuple[RankTable, ...]

    def __str__(self) -> str:
        return self.name

    def covers(self, table: str) -> bool:
        return table in self.tables

    def match(self, finding: Finding) -> Optional[Rank]:
        for rule in self.rules:
            if not rule.applies(finding):
                continue
            rank = rule.lookup(finding)
            if rank is not None:
                return rank
        return None


@dataclass(frozen=True)
class RankRules:
    """Immutable rule configuration: scopes in precedence order."""

    scopes: Tuple[RuleScope, ...]

    def scope_for(self, table: str) -> Optional[RuleScope]:
        for scope in self.scopes:
            if scope.covers(table):
                return scope
        return None


@dataclass(frozen=True)
class RankMatch:
    scope: str
    rank: Rank


class RankClassifier:
    """Assigns ranks to findings from a fixed rule configuration."""

    def __init__(self, rules: RankRules) -> None:
        self.rules = rules

    def match(self, finding: Finding) -> Optional[RankMatch]:
        """Return the matching scope and rank, or None."""
        if is_persistent(finding):
            return None

        scope = self.rules.scope_for(finding.table)
        if scope is None:
            return None

        rank = scope.match(finding)
        if rank is None:
            return None

        return RankMatch(scope=scope.name, rank=rank)

    def classify(self, finding: Finding) -> Tuple[Rank, bool]:
        """Return ``(rank, matched)``; ``(Rank.NONE, False)`` when nothing matches."""
        result = self.match(finding)
        if result is None:
            return Rank.NONE, False
        return result.rank, True


@dataclass
class RankChange:
    """Outcome of classifying one finding of a file."""

    line: int
    finding: Finding
    scope: str
    previous: Rank
    rank: Rank

    @property
    def changed(self) -> bool:
        return self.previous != self.rank


@dataclass
class RankAssignment:
    matches: List[RankChange] = field(default_factory=list)
    unmatched: List[Finding] = field(default_factory=list)

    @property
    def changed(self) -> List[RankChange]:
        return [m for m in self.matches if m.changed]


def apply_ranks(findings: Sequence[Finding], classifier: RankClassifier) -> RankAssignment:
    """Classify findings in order and set the rank of those that matched.

    Unmatched findings keep whatever rank they already carry.
    """
    assignment = RankAssignment()

    for i, finding in enumerate(findings):
        result = classifier.match(finding)
        if result is None:
            assignment.unmatched.append(finding)
            continue

        change = RankChange(
            line=i + 1,
            finding=finding,
            scope=result.scope,
            previous=finding.rank,
            rank=result.rank,
        )
        if change.changed:
            finding.rank = result.rank
        assignment.matches.append(change)

    return assignment
