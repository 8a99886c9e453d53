"""DQA results files: the Finding record and its CSV reader/writer.

A site's secondary report directory holds one CSV file per group of tables.
Each row is one finding. Files are read with pandas (every value kept as a
string) and validated with a pandera schema before any finding is built, so a
malformed file is rejected as a whole rather than half-processed.

Example:
    files = read_from_dir("SecondaryReports/CHOP/ETLv8")
    for name, results in files.items():
        for finding in results.findings:
            print(finding.table, finding.field, finding.rank)
        results.save()
"""

from __future__ import annotations

import dataclasses
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Dict, IO, Iterable, List, Optional, Union

import pandas as pd
import pandera as pa

from dqa.lib.errors import ConsistencyError, ResultsFormatError

logger = logging.getLogger(__name__)

__all__ = [
    "COLUMNS",
    "Finding",
    "Rank",
    "ResultsFile",
    "read_from_dir",
    "read_results",
    "write_results",
]


class Rank(IntEnum):
    """Ordinal severity of a finding."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    def __str__(self) -> str:
        if self is Rank.NONE:
            return ""
        return self.name.capitalize()

    def __format__(self, format_spec: str) -> str:
        return format(str(self), format_spec)

    @classmethod
    def parse(cls, value: str) -> "Rank":
        """Parse a rank as written in results files ("High", "low", "")."""
        text = (value or "").strip()
        if not text:
            return cls.NONE
        try:
            rank = cls[text.upper()]
        except KeyError:
            raise ValueError(f"invalid rank {value!r}") from None
        return rank


# (CSV header, Finding attribute) in canonical column order.
COLUMNS = [
    ("Model Version", "model_version"),
    ("Data Version", "data_version"),
    ("DQA Version", "dqa_version"),
    ("Table", "table"),
    ("Field", "field"),
    ("Goal", "goal"),
    ("Issue Code", "issue_code"),
    ("Issue Description", "issue_description"),
    ("Finding", "finding"),
    ("Prevalence", "prevalence"),
    ("Rank", "rank"),
    ("Site Response", "site_response"),
    ("Cause", "cause"),
    ("Status", "status"),
    ("Reviewer", "reviewer"),
    ("Github ID", "github_id"),
]

_ATTR_BY_HEADER = dict(COLUMNS)
_RANK_NAMES = ["", "low", "medium", "high"]

RESULTS_SCHEMA = pa.DataFrameSchema(
    {
        "Data Version": pa.Column(str),
        "Table": pa.Column(str),
        "Field": pa.Column(str),
        "Issue Code": pa.Column(str),
        "Prevalence": pa.Column(str),
        "Rank": pa.Column(
            str,
            pa.Check(
                lambda s: s.str.strip().str.lower().isin(_RANK_NAMES),
                error="Rank must be empty, Low, Medium or High",
            ),
        ),
        "Cause": pa.Column(str),
        "Status": pa.Column(str),
        "Github ID": pa.Column(str, pa.Check.str_matches(r"^\s*\d*\s*$")),
    },
    strict=False,
    coerce=True,
)


@dataclass
class Finding:
    """One data quality observation (one row of a results file)."""

    model_version: str = ""
    data_version: str = ""
    dqa_version: str = ""
    table: str = ""
    field: str = ""
    goal: str = ""
    issue_code: str = ""
    issue_description: str = ""
    finding: str = ""
    prevalence: str = ""
    rank: Rank = Rank.NONE
    site_response: str = ""
    cause: str = ""
    status: str = ""
    reviewer: str = ""
    github_id: Optional[int] = None

    # Columns this tool does not interpret, kept for round-tripping.
    extras: Dict[str, str] = dataclasses.field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.table}/{self.field} ({self.issue_code})"

    @property
    def _version_parts(self) -> List[str]:
        # "pedsnet-2.3.0-CHOP-ETLv11" -> [..., "CHOP", "ETLv11"]
        parts = self.data_version.strip().rsplit("-", 2)
        return parts if len(parts) == 3 else []

    @property
    def site(self) -> str:
        """Site (subject) the finding was produced for."""
        parts = self._version_parts
        return parts[1] if parts else ""

    @property
    def etl_version(self) -> str:
        """ETL (pipeline) version of the site's data."""
        parts = self._version_parts
        return parts[2] if parts else ""

    @property
    def is_issue(self) -> bool:
        """Whether the finding is actionable and belongs on the tracker."""
        return bool(self.issue_code.strip())

    def bind_tracker_id(self, number: int) -> None:
        """Record the tracker issue created for this finding.

        A finding stays bound to the first issue it was posted as.
        """
        if self.github_id is not None and self.github_id != number:
            raise ConsistencyError(
                f"Finding {self} is already bound to issue #{self.github_id}",
                table=self.table,
                details={"new_issue": number},
            )
        self.github_id = number

    @classmethod
    def from_row(cls, row: Dict[str, str]) -> "Finding":
        values: Dict[str, object] = {}
        extras: Dict[str, str] = {}

        for header, value in row.items():
            attr = _ATTR_BY_HEADER.get(header)
            if attr is None:
                extras[header] = value
            else:
                values[attr] = value

        rank = values.get("rank", "")
        values["rank"] = Rank.parse(str(rank))

        github_id = str(values.get("github_id", "")).strip()
        values["github_id"] = int(github_id) if github_id else None

        return cls(extras=extras, **values)  # type: ignore[arg-type]

    def to_row(self) -> Dict[str, str]:
        row = dict(self.extras)
        for header, attr in COLUMNS:
            value = getattr(self, attr)
            if attr == "github_id":
                row[header] = "" if value is None else str(value)
            else:
                row[header] = str(value)
        return row


@dataclass
class ResultsFile:
    """A parsed results file, remembering its column layout."""

    path: Path
    columns: List[str]
    findings: List[Finding] = dataclasses.field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name

    def issues(self) -> List[Finding]:
        return [f for f in self.findings if f.is_issue]

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the findings back, to ``path`` or the file they came from."""
        target = Path(path) if path else self.path
        with open(target, "w", newline="", encoding="utf-8") as handle:
            write_results(handle, self.findings, columns=self.columns)
        logger.debug("Wrote %d findings to %s", len(self.findings), target)
        return target


def read_results(path: Union[str, Path]) -> ResultsFile:
    """Read and validate one results file.

    Raises:
        ResultsFormatError: If the file is not a valid results CSV
    """
    path = Path(path)

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, na_filter=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ResultsFormatError(
            f"Could not parse results file: {e}", path=str(path)
        ) from e

    try:
        RESULTS_SCHEMA.validate(df)
    except pa.errors.SchemaError as e:
        raise ResultsFormatError(
            f"Invalid results file: {e}", path=str(path)
        ) from e

    columns = [str(c) for c in df.columns]
    findings = [Finding.from_row(row) for row in df.to_dict(orient="records")]

    return ResultsFile(path=path, columns=columns, findings=findings)


def read_from_dir(
    directory: Union[str, Path],
    *,
    strict: bool = True,
) -> "OrderedDict[str, ResultsFile]":
    """Read every results file directly inside ``directory``.

    Args:
        directory: Report directory, e.g. ``SecondaryReports/CHOP/ETLv8``
        strict: Raise on the first unreadable file instead of skipping it

    Returns:
        Mapping of file name to ResultsFile, sorted by name
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ResultsFormatError("Not a directory", path=str(directory))

    files: "OrderedDict[str, ResultsFile]" = OrderedDict()

    for path in sorted(directory.glob("*.csv")):
        if not path.is_file():
            continue
        try:
            files[path.name] = read_results(path)
        except ResultsFormatError as e:
            if strict:
                raise
            logger.warning("Skipping %s: %s", path.name, e)

    return files


def write_results(
    handle: IO[str],
    findings: Iterable[Finding],
    *,
    columns: Optional[List[str]] = None,
) -> None:
    """Serialize findings as CSV, in ``columns`` order (canonical by default)."""
    if columns is None:
        columns = [header for header, _ in COLUMNS]

    rows = [f.to_row() for f in findings]
    df = pd.DataFrame(rows, columns=columns, dtype=str)
    df.to_csv(handle, index=False)
