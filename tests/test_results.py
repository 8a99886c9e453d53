"""Tests for results files and the Finding record."""

import io

import pytest

from dqa.lib.errors import ConsistencyError, ResultsFormatError
from dqa.lib.results import (
    COLUMNS,
    Finding,
    Rank,
    read_from_dir,
    read_results,
    write_results,
)

HEADER = ",".join(h for h, _ in COLUMNS)


def _row(**values):
    row = {h: "" for h, _ in COLUMNS}
    row.update(values)
    return ",".join(row[h] for h, _ in COLUMNS)


class TestRank:
    """Tests for the Rank enum."""

    @pytest.mark.parametrize(
        "text,expected",
        [("", Rank.NONE), ("  ", Rank.NONE), ("Low", Rank.LOW), ("medium", Rank.MEDIUM), ("HIGH", Rank.HIGH)],
    )
    def test_parse(self, text, expected):
        """Should parse rank names case-insensitively."""
        assert Rank.parse(text) is expected

    def test_parse_invalid(self):
        """Should reject unknown names."""
        with pytest.raises(ValueError):
            Rank.parse("critical")

    def test_ordering(self):
        """Should order none < low < medium < high."""
        assert Rank.NONE < Rank.LOW < Rank.MEDIUM < Rank.HIGH

    def test_str_and_format(self):
        """Should render by name, with none as empty."""
        assert str(Rank.HIGH) == "High"
        assert f"{Rank.MEDIUM}" == "Medium"
        assert str(Rank.NONE) == ""


class TestFinding:
    """Tests for Finding."""

    def test_defaults(self):
        """Should build with empty values and a fresh extras mapping."""
        first = Finding()
        second = Finding(table="person")

        first.extras["Notes"] = "checked"

        assert first.field == ""
        assert first.rank is Rank.NONE
        assert first.github_id is None
        assert second.extras == {}

    def test_site_and_etl_version_from_data_version(self, make_finding):
        """Should split the data version into site and ETL version."""
        finding = make_finding(data_version="pedsnet-2.3.0-CHOP-ETLv11")

        assert finding.site == "CHOP"
        assert finding.etl_version == "ETLv11"

    def test_unparsable_data_version(self, make_finding):
        """Should report no site for unparsable data versions."""
        finding = make_finding(data_version="unknown")

        assert finding.site == ""
        assert finding.etl_version == ""

    def test_is_issue(self, make_finding):
        """Should treat findings with an issue code as actionable."""
        assert make_finding().is_issue
        assert not make_finding(issue_code="").is_issue
        assert not make_finding(issue_code="  ").is_issue

    def test_bind_tracker_id(self, make_finding):
        """Should bind once and accept re-binding to the same issue."""
        finding = make_finding()

        finding.bind_tracker_id(7)
        finding.bind_tracker_id(7)

        assert finding.github_id == 7

    def test_rebinding_to_other_issue_raises(self, make_finding):
        """Should refuse to move a finding to another issue."""
        finding = make_finding(github_id=7)

        with pytest.raises(ConsistencyError):
            finding.bind_tracker_id(8)
        assert finding.github_id == 7

    def test_str(self, make_finding):
        """Should describe the finding by table, field and issue code."""
        assert str(make_finding()) == "person/person_id (g4-001)"


class TestReadResults:
    """Tests for read_results and saving."""

    def test_reads_values(self, tmp_path):
        """Should parse ranks and tracker ids."""
        path = tmp_path / "person.csv"
        path.write_text(
            HEADER + "\n"
            + _row(**{"Data Version": "pedsnet-2.3.0-CHOP-ETLv11", "Table": "person", "Field": "person_id",
                      "Issue Code": "g4-001", "Prevalence": "high", "Rank": "High", "Github ID": "12"}) + "\n"
            + _row(**{"Table": "person", "Field": "gender_concept_id"}) + "\n",
            encoding="utf-8",
        )

        results = read_results(path)

        assert results.name == "person.csv"
        assert len(results.findings) == 2
        first, second = results.findings
        assert first.rank is Rank.HIGH
        assert first.github_id == 12
        assert first.site == "CHOP"
        assert second.rank is Rank.NONE
        assert second.github_id is None
        assert results.issues() == [first]

    def test_save_preserves_layout_and_extra_columns(self, tmp_path):
        """Should write back unchanged rows byte for byte."""
        text = (
            HEADER + ",Notes\n"
            + _row(**{"Data Version": "pedsnet-2.3.0-CHOP-ETLv11", "Table": "person", "Field": "person_id",
                      "Issue Code": "g4-001", "Prevalence": "high", "Github ID": "12"})
            + ",keep me\n"
        )
        path = tmp_path / "person.csv"
        path.write_text(text, encoding="utf-8")

        results = read_results(path)
        assert results.findings[0].extras == {"Notes": "keep me"}

        results.save()

        assert path.read_text(encoding="utf-8") == text

    def test_save_writes_changes(self, tmp_path, make_finding, write_results_file):
        """Should persist changed values."""
        path = write_results_file(tmp_path / "person.csv", [make_finding()])

        results = read_results(path)
        results.findings[0].rank = Rank.MEDIUM
        results.findings[0].cause = "ETL"
        results.save()

        reread = read_results(path).findings[0]
        assert reread.rank is Rank.MEDIUM
        assert reread.cause == "ETL"

    def test_invalid_rank_rejects_file(self, tmp_path):
        """Should reject a file with an unknown rank."""
        path = tmp_path / "bad.csv"
        path.write_text(HEADER + "\n" + _row(Rank="Critical") + "\n", encoding="utf-8")

        with pytest.raises(ResultsFormatError):
            read_results(path)

    def test_non_numeric_tracker_id_rejects_file(self, tmp_path):
        """Should reject a file with a malformed Github ID."""
        path = tmp_path / "bad.csv"
        path.write_text(HEADER + "\n" + _row(**{"Github ID": "abc"}) + "\n", encoding="utf-8")

        with pytest.raises(ResultsFormatError):
            read_results(path)

    def test_missing_required_column(self, tmp_path):
        """Should reject a file without the Status column."""
        path = tmp_path / "bad.csv"
        path.write_text("Table,Field\nperson,person_id\n", encoding="utf-8")

        with pytest.raises(ResultsFormatError):
            read_results(path)

    def test_empty_file(self, tmp_path):
        """Should reject an empty file."""
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ResultsFormatError):
            read_results(path)

    def test_header_only_file(self, tmp_path):
        """Should read a file with no rows."""
        path = tmp_path / "none.csv"
        path.write_text(HEADER + "\n", encoding="utf-8")

        assert read_results(path).findings == []


class TestReadFromDir:
    """Tests for read_from_dir."""

    def test_reads_csv_files_sorted(self, report_dir, make_finding, write_results_file):
        """Should read every CSV in name order and ignore other files."""
        write_results_file(report_dir / "visit.csv", [make_finding(table="visit_occurrence")])
        write_results_file(report_dir / "person.csv", [make_finding()])
        (report_dir / "README.txt").write_text("not results", encoding="utf-8")

        files = read_from_dir(report_dir)

        assert list(files) == ["person.csv", "visit.csv"]

    def test_strict_raises_on_bad_file(self, report_dir, make_finding, write_results_file):
        """Should raise for an unreadable file in strict mode."""
        write_results_file(report_dir / "person.csv", [make_finding()])
        (report_dir / "bad.csv").write_text("Table\nperson\n", encoding="utf-8")

        with pytest.raises(ResultsFormatError):
            read_from_dir(report_dir)

    def test_lenient_skips_bad_file(self, report_dir, make_finding, write_results_file):
        """Should skip unreadable files when not strict."""
        write_results_file(report_dir / "person.csv", [make_finding()])
        (report_dir / "bad.csv").write_text("Table\nperson\n", encoding="utf-8")

        files = read_from_dir(report_dir, strict=False)

        assert list(files) == ["person.csv"]

    def test_not_a_directory(self, tmp_path):
        """Should raise for a missing directory."""
        with pytest.raises(ResultsFormatError, match="Not a directory"):
            read_from_dir(tmp_path / "missing")


def test_write_results_uses_canonical_columns(make_finding):
    out = io.StringIO()

    write_results(out, [make_finding(rank=Rank.LOW, github_id=3)])

    lines = out.getvalue().splitlines()
    assert lines[0] == HEADER
    assert ",Low," in lines[1]
    assert lines[1].endswith(",3")
