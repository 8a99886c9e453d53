"""Field-role predicates used to guard rank tables.

Each predicate is a pure function of a finding's table, field and status.
The role predicates (primary key, foreign key, source value, concept id,
date/year, other) partition field names by the part they play in the
common data model.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable

from dqa.lib.results import Finding

__all__ = [
    "Condition",
    "CONDITIONS",
    "field_in",
    "is_concept_id",
    "is_date_year",
    "is_foreign_key",
    "is_other",
    "is_persistent",
    "is_primary_key",
    "is_source_value",
]

Condition = Callable[[Finding], bool]


def is_persistent(f: Finding) -> bool:
    """Previously triaged findings are never re-ranked."""
    return f.status.lower() == "persistent"


def is_primary_key(f: Finding) -> bool:
    return f.field == f"{f.table}_id"


def is_source_value(f: Finding) -> bool:
    return f.field.endswith("_source_value")


def is_concept_id(f: Finding) -> bool:
    return f.field.endswith("_concept_id")


def is_foreign_key(f: Finding) -> bool:
    return not is_primary_key(f) and f.field.endswith("_id") and not is_concept_id(f)


def is_date_year(f: Finding) -> bool:
    return "date" in f.field or "year" in f.field


def is_other(f: Finding) -> bool:
    return not (
        is_primary_key(f)
        or is_foreign_key(f)
        or is_source_value(f)
        or is_concept_id(f)
        or is_date_year(f)
    )


def field_in(fields: Iterable[str]) -> Condition:
    """Build a predicate matching an explicit list of field names."""
    names = frozenset(fields)

    def condition(f: Finding) -> bool:
        return f.field in names

    condition.__name__ = f"field_in({', '.join(sorted(names))})"
    return condition


# Names usable in rule files.
CONDITIONS: Dict[str, Condition] = {
    "primary_key": is_primary_key,
    "source_value": is_source_value,
    "concept_id": is_concept_id,
    "foreign_key": is_foreign_key,
    "date_year": is_date_year,
    "other": is_other,
}
