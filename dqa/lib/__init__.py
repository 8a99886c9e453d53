"""DQA library modules.

This package contains the rank classification engine, the label-based
reconciliation engine and the results file and tracker plumbing they use.
"""

from dqa.lib.errors import (
    ConfigurationError,
    ConsistencyError,
    DQAError,
    ResultsFormatError,
    SummaryAmbiguityError,
    TrackerError,
)
from dqa.lib.feedback import FeedbackReport, LabelChange, SyncResult, read_issue_facts
from dqa.lib.labels import LabelFact, decode_label, decode_labels, encode_label, parse_label
from dqa.lib.rank_rules import default_rules, load_rules
from dqa.lib.ranking import RankClassifier, RankRules, RankTable, RuleScope, apply_ranks
from dqa.lib.results import Finding, Rank, ResultsFile, read_from_dir, read_results, write_results
from dqa.lib.tracker import Issue, IssueRequest, TrackerClient

__all__ = [
    # Errors
    "ConfigurationError",
    "ConsistencyError",
    "DQAError",
    "ResultsFormatError",
    "SummaryAmbiguityError",
    "TrackerError",
    # Results
    "Finding",
    "Rank",
    "ResultsFile",
    "read_from_dir",
    "read_results",
    "write_results",
    # Ranking
    "RankClassifier",
    "RankRules",
    "RankTable",
    "RuleScope",
    "apply_ranks",
    "default_rules",
    "load_rules",
    # Labels
    "LabelFact",
    "decode_label",
    "decode_labels",
    "encode_label",
    "parse_label",
    # Tracker
    "FeedbackReport",
    "Issue",
    "IssueRequest",
    "LabelChange",
    "SyncResult",
    "TrackerClient",
    "read_issue_facts",
]
