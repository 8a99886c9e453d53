"""Tests for loading rank rules from YAML files."""

import textwrap

import pytest

from dqa.lib.errors import ConfigurationError
from dqa.lib.rank_rules import default_rules, load_rules
from dqa.lib.ranking import RankClassifier
from dqa.lib.results import Rank

RULES_YAML = """
scopes:
  - name: Administrative
    tables: [care_site, provider]
    rules:
      - when: [primary_key]
        ranks:
          - [g2-013, high, medium]
          - [g2-013, medium, low]
      - when:
          - field_in: [provider_id, care_site]
        ranks:
          - [g2-013, low, High]
  - name: Everything
    tables: [person]
    rules:
      - ranks:
          - [g4-001, high, low]
"""


def _write(tmp_path, text):
    path = tmp_path / "rules.yaml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestLoadRules:
    """Tests for load_rules."""

    def test_loads_scopes_in_order(self, tmp_path):
        """Should keep scope and table declaration order."""
        rules = load_rules(_write(tmp_path, RULES_YAML))

        assert [s.name for s in rules.scopes] == ["Administrative", "Everything"]
        assert rules.scopes[0].tables == ("care_site", "provider")
        assert len(rules.scopes[0].rules) == 2

    def test_loaded_rules_classify(self, tmp_path, make_finding):
        """Should classify with named conditions, field_in and unguarded tables."""
        classifier = RankClassifier(load_rules(_write(tmp_path, RULES_YAML)))

        pk = make_finding(table="care_site", field="care_site_id", issue_code="g2-013", prevalence="high")
        listed = make_finding(table="provider", field="care_site", issue_code="g2-013", prevalence="low")
        person = make_finding(table="person", field="anything", issue_code="g4-001", prevalence="high")

        assert classifier.classify(pk) == (Rank.MEDIUM, True)
        assert classifier.classify(listed) == (Rank.HIGH, True)
        assert classifier.classify(person) == (Rank.LOW, True)

    def test_missing_file(self, tmp_path):
        """Should raise ConfigurationError for a missing file."""
        with pytest.raises(ConfigurationError, match="Rule file not found"):
            load_rules(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Should raise ConfigurationError for unparsable YAML."""
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_rules(_write(tmp_path, "scopes: [unclosed"))

    def test_requires_scopes_list(self, tmp_path):
        """Should reject files without a scopes list."""
        with pytest.raises(ConfigurationError, match="scopes"):
            load_rules(_write(tmp_path, "rules: []\n"))

    def test_unknown_condition(self, tmp_path):
        """Should name the valid conditions in the suggestion."""
        text = """
        scopes:
          - name: Broken
            tables: [person]
            rules:
              - when: [natural_key]
                ranks: [[g4-001, high, high]]
        """
        with pytest.raises(ConfigurationError) as exc_info:
            load_rules(_write(tmp_path, text))

        assert exc_info.value.value == "natural_key"
        assert "primary_key" in exc_info.value.suggestion

    def test_invalid_rank(self, tmp_path):
        """Should reject rank names outside low/medium/high."""
        text = """
        scopes:
          - name: Broken
            tables: [person]
            rules:
              - ranks: [[g4-001, high, critical]]
        """
        with pytest.raises(ConfigurationError, match="Invalid rank"):
            load_rules(_write(tmp_path, text))

    def test_malformed_rank_row(self, tmp_path):
        """Should reject rows that are not triples."""
        text = """
        scopes:
          - name: Broken
            tables: [person]
            rules:
              - ranks: [[g4-001, high]]
        """
        with pytest.raises(ConfigurationError, match="issue_code, prevalence, rank"):
            load_rules(_write(tmp_path, text))

    def test_scope_requires_tables(self, tmp_path):
        """Should reject a scope without tables."""
        text = """
        scopes:
          - name: Empty
            tables: []
        """
        with pytest.raises(ConfigurationError, match="tables"):
            load_rules(_write(tmp_path, text))


def test_default_rules_cover_cdm_tables():
    tables = {t for scope in default_rules().scopes for t in scope.tables}

    assert {"person", "care_site", "measurement", "condition_occurrence"} <= tables
