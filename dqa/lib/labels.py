"""Tracker label codec.

Facts about a finding are stored on its tracker issue as labels of the form
``"<Kind>: <value>"``, e.g. ``"Status: Under review"``. Decoding splits on the
first ``": "``; kinds compare case-insensitively while values are verbatim.
Labels without the separator carry no fact and are ignored by decoders.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional

from dqa.lib.errors import ResultsFormatError

__all__ = [
    "CAUSE",
    "DATA_CYCLE",
    "DATA_QUALITY",
    "DATA_QUALITY_SUMMARY",
    "LabelFact",
    "RANK",
    "STATUS",
    "TABLE",
    "decode_label",
    "decode_labels",
    "encode_label",
    "parse_label",
]

SEPARATOR = ": "

# Marker labels (no value).
DATA_QUALITY = "Data Quality"
DATA_QUALITY_SUMMARY = "Data Quality Summary"

# Fact kinds.
DATA_CYCLE = "Data Cycle"
TABLE = "Table"
RANK = "Rank"
CAUSE = "Cause"
STATUS = "Status"


@dataclass(frozen=True)
class LabelFact:
    kind: str
    value: str

    def is_kind(self, kind: str) -> bool:
        return self.kind.lower() == kind.lower()

    def __str__(self) -> str:
        return encode_label(self.kind, self.value)


def encode_label(kind: str, value: Any) -> str:
    """Encode a fact as a label: ``encode_label("Rank", Rank.HIGH) == "Rank: High"``."""
    return f"{kind}{SEPARATOR}{str(value)}"


def parse_label(label: str) -> LabelFact:
    """Decode a label, raising if it is not a fact label."""
    kind, sep, value = label.partition(SEPARATOR)
    if not sep:
        raise ResultsFormatError("Could not parse label", value=label)
    return LabelFact(kind, value)


def decode_label(label: str) -> Optional[LabelFact]:
    """Decode a label, or return None for labels that carry no fact."""
    kind, sep, value = label.partition(SEPARATOR)
    if not sep:
        return None
    return LabelFact(kind, value)


def decode_labels(labels: Iterable[str]) -> Iterator[LabelFact]:
    for label in labels:
        fact = decode_label(label)
        if fact is not None:
            yield fact
