"""Built-in rank rules and loading of rule files.

The built-in rules cover the PEDSnet CDM tables in three scopes, checked in
this order: Administrative, Demographic, Fact.

A rule file replaces the built-ins entirely. Example YAML:
    scopes:
      - name: Administrative
        tables: [care_site, location, provider]
        rules:
          - when: [primary_key]
            ranks:
              - [g2-013, high, medium]
              - [g2-013, medium, low]
          - when:
              - field_in: [provider_id, care_site]
            ranks:
              - [g2-013, low, medium]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Union

import yaml

from dqa.lib.conditions import (
    CONDITIONS,
    Condition,
    field_in,
    is_concept_id,
    is_date_year,
    is_foreign_key,
    is_other,
    is_primary_key,
    is_source_value,
)
from dqa.lib.errors import ConfigurationError
from dqa.lib.ranking import RankRules, RankTable, RuleScope
from dqa.lib.results import Rank

logger = logging.getLogger(__name__)

__all__ = ["default_rules", "load_rules"]

HIGH = Rank.HIGH
MEDIUM = Rank.MEDIUM
LOW = Rank.LOW


def _admin_scope() -> RuleScope:
    return RuleScope(
        name="Administrative",
        tables=("care_site", "location", "provider"),
        rules=(
            RankTable.build([is_primary_key], [
                ("g2-013", "high", MEDIUM),
                ("g2-013", "medium", LOW),
                ("g2-013", "low", LOW),
            ]),
            RankTable.build([is_source_value], [
                ("g2-011", "full", MEDIUM),
                ("g2-011", "medium", LOW),
                ("g4-002", "full", MEDIUM),
                ("g4-002", "high", MEDIUM),
                ("g4-002", "medium", MEDIUM),
                ("g4-002", "low", LOW),
            ]),
            RankTable.build([is_concept_id], [
                ("g1-002", "high", HIGH),
                ("g1-002", "medium", HIGH),
            ]),
            RankTable.build([is_foreign_key], [
                ("g2-013", "high", MEDIUM),
                ("g2-013", "medium", LOW),
                ("g2-013", "low", LOW),
                ("g4-002", "full", MEDIUM),
            ]),
            RankTable.build([is_other], [
                ("g2-011", "low", LOW),
                ("g4-002", "full", MEDIUM),
                ("g4-002", "high", MEDIUM),
                ("g4-002", "medium", MEDIUM),
                ("g4-002", "low", LOW),
            ]),
        ),
    )


def _demographic_scope() -> RuleScope:
    return RuleScope(
        name="Demographic",
        tables=("person", "death", "observation_period"),
        rules=(
            RankTable.build([is_primary_key], [
                ("g4-001", "high", HIGH),
                ("g1-003", "low", MEDIUM),
                ("g2-013", "medium", HIGH),
            ]),
            RankTable.build([is_source_value], [
                ("g4-002", "full", MEDIUM),
                ("g4-002", "high", MEDIUM),
            ]),
            RankTable.build([is_foreign_key], [
                ("g1-003", "low", MEDIUM),
                ("g2-013", "medium", HIGH),
                ("g2-013", "low", MEDIUM),
                ("g2-005", "high", LOW),
                ("g3-002", "unknown", MEDIUM),
            ]),
            RankTable.build([is_other], [
                ("g2-011", "low", MEDIUM),
                ("g4-002", "full", HIGH),
            ]),
            RankTable.build([is_concept_id], [
                ("g4-002", "full", HIGH),
                ("g2-006", "unknown", HIGH),
            ]),
            RankTable.build([is_date_year], [
                ("g2-009", "low", MEDIUM),
                ("g2-010", "low", MEDIUM),
            ]),
            # Fact-style checks on demographic tables
            RankTable.build([is_primary_key], [
                ("g4-001", "full", HIGH),
            ]),
            RankTable.build([is_source_value], [
                ("g2-011", "full", HIGH),
                ("g4-002", "full", HIGH),
            ]),
        ),
    )


def _fact_scope() -> RuleScope:
    return RuleScope(
        name="Fact",
        tables=(
            "condition_occurrence",
            "drug_exposure",
            "fact_relationship",
            "measurement",
            "observation",
            "procedure",
            "visit_occurrence",
            "visit_payer",
        ),
        rules=(
            RankTable.build([field_in(["provider_id", "care_site"])], [
                ("g2-013", "low", MEDIUM),
                ("g4-002", "low", LOW),
                ("g2-005", "high", LOW),
            ]),
            RankTable.build([field_in(["person_id", "visit_occurrence_id"])], [
                ("g2-013", "high", HIGH),
                ("g2-005", "high", MEDIUM),
                ("g2-005", "medium", MEDIUM),
            ]),
            RankTable.build([is_other], [
                ("g2-013", "high", LOW),
                ("g2-011", "high", HIGH),
                ("g4-002", "high", HIGH),
                ("g2-001", "unknown", LOW),
                ("g2-007", "high", LOW),
                ("g2-007", "medium", LOW),
            ]),
            RankTable.build([is_concept_id], [
                ("g4-001", "unknown", HIGH),
                ("g2-012", "high", MEDIUM),
                ("g2-013", "high", HIGH),
                ("g1-001", "full", HIGH),
                ("g4-002", "full", HIGH),
                ("g1-002", "high", HIGH),
                ("g2-006", "low", MEDIUM),
            ]),
            RankTable.build([is_date_year], [
                ("g2-009", "low", MEDIUM),
                ("g2-008", "unknown", MEDIUM),
                ("g2-010", "low", LOW),
            ]),
        ),
    )


def default_rules() -> RankRules:
    """Return the built-in rule configuration."""
    return RankRules(scopes=(_admin_scope(), _demographic_scope(), _fact_scope()))


def _parse_condition(entry: Any, where: str) -> Condition:
    if isinstance(entry, str):
        condition = CONDITIONS.get(entry)
        if condition is None:
            raise ConfigurationError(
                f"Unknown condition in {where}",
                field="when",
                value=entry,
                suggestion=f"Use one of: {', '.join(sorted(CONDITIONS))}, or field_in",
            )
        return condition

    if isinstance(entry, dict) and set(entry) == {"field_in"}:
        fields = entry["field_in"]
        if not isinstance(fields, list) or not fields:
            raise ConfigurationError(
                f"field_in in {where} must be a non-empty list", field="when", value=fields
            )
        return field_in(str(f) for f in fields)

    raise ConfigurationError(f"Invalid condition in {where}", field="when", value=entry)


def _parse_rank_row(row: Any, where: str) -> tuple:
    if not isinstance(row, list) or len(row) != 3:
        raise ConfigurationError(
            f"Rank rows in {where} must be [issue_code, prevalence, rank]",
            field="ranks",
            value=row,
        )

    issue_code, prevalence, rank_name = (str(v) for v in row)
    try:
        rank = Rank.parse(rank_name)
    except ValueError:
        raise ConfigurationError(
            f"Invalid rank in {where}", field="ranks", value=rank_name
        ) from None

    return issue_code, prevalence, rank


def _parse_scope(config: Any, index: int) -> RuleScope:
    if not isinstance(config, dict):
        raise ConfigurationError(f"scopes[{index}] must be a mapping", field="scopes", value=config)

    name = config.get("name")
    if not name:
        raise ConfigurationError(f"scopes[{index}].name is required")

    tables = config.get("tables")
    if not isinstance(tables, list) or not tables:
        raise ConfigurationError(
            f"scopes[{index}].tables must be a non-empty list", field="tables", value=tables
        )

    rules: List[RankTable] = []
    for j, rule in enumerate(config.get("rules") or []):
        where = f"{name} rule {j + 1}"
        if not isinstance(rule, dict):
            raise ConfigurationError(f"{where} must be a mapping", field="rules", value=rule)
        conditions = [_parse_condition(c, where) for c in rule.get("when") or []]
        rows = [_parse_rank_row(r, where) for r in rule.get("ranks") or []]
        rules.append(RankTable.build(conditions, rows))

    return RuleScope(name=str(name), tables=tuple(str(t) for t in tables), rules=tuple(rules))


def load_rules(path: Union[str, Path]) -> RankRules:
    """Load a rule configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError("Rule file not found", field="rules", value=str(path))

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in rule file: {e}", value=str(path)) from e

    if not isinstance(config, dict) or not isinstance(config.get("scopes"), list):
        raise ConfigurationError(
            "Rule file must contain a 'scopes' list", field="scopes", value=str(path)
        )

    scopes = tuple(_parse_scope(s, i) for i, s in enumerate(config["scopes"]))
    logger.debug("Loaded %d rule scopes from %s", len(scopes), path)

    return RankRules(scopes=scopes)
