"""Tests for the error hierarchy and logging helpers."""

import json
import logging

from dqa.lib.errors import (
    ConfigurationError,
    ConsistencyError,
    DQAError,
    ResultsFormatError,
    SummaryAmbiguityError,
    TrackerError,
)
from dqa.lib.logging import JSONFormatter, get_dqa_logger, setup_logging


class TestErrors:
    """Tests for structured errors."""

    def test_hierarchy(self):
        """Should derive every error from DQAError."""
        for cls in (ConfigurationError, ResultsFormatError, ConsistencyError, TrackerError):
            assert issubclass(cls, DQAError)
        assert issubclass(SummaryAmbiguityError, ConsistencyError)

    def test_message_includes_context(self):
        """Should include site, table, details and suggestion."""
        error = DQAError(
            "Something broke",
            site="CHOP",
            table="person",
            details={"issue": 3},
            suggestion="Try again",
        )

        message = str(error)
        assert message.startswith("[CHOP.person]")
        assert "issue: 3" in message
        assert "Suggestion: Try again" in message

    def test_plain_message(self):
        """Should leave a bare message untouched."""
        assert str(DQAError("plain")) == "plain"

    def test_to_dict(self):
        """Should expose structured fields."""
        error = ConfigurationError("bad", field="cycle", value="")

        data = error.to_dict()

        assert data["error_type"] == "ConfigurationError"
        assert data["details"] == {"field": "cycle", "value": ""}

    def test_consistency_error_default_suggestion(self):
        """Should tell the user to fix the data by hand."""
        error = ConsistencyError("drift", issue_url="https://github.com/PEDSnet/CHOP/issues/1")

        assert error.details["issue"] == "https://github.com/PEDSnet/CHOP/issues/1"
        assert "re-run" in error.suggestion

    def test_summary_ambiguity_lists_urls(self):
        """Should list every candidate URL."""
        error = SummaryAmbiguityError("Multiple issues match:", urls=["u1", "u2"])

        assert "Multiple issues match:\n- u1\n- u2" in str(error)
        assert "summary issue" in error.suggestion

    def test_tracker_error_records_cause(self):
        """Should record the status code and cause."""
        cause = RuntimeError("boom")
        error = TrackerError("failed", operation="create_issue", status_code=502, cause=cause)

        assert error.details == {
            "operation": "create_issue",
            "status_code": 502,
            "cause": "boom",
            "cause_type": "RuntimeError",
        }


class TestLogging:
    """Tests for logging helpers."""

    def test_json_formatter_lifts_scope_fields(self):
        """Should put scope fields at the top level and other extras under extra."""
        record = logging.LogRecord("dqa.test", logging.ERROR, __file__, 1, "Fetched %d issues", (3,), None)
        record.site = "CHOP"
        record.issue_code = "g4-001"
        record.status_code = 502

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "ERROR"
        assert data["message"] == "Fetched 3 issues"
        assert data["site"] == "CHOP"
        assert data["issue_code"] == "g4-001"
        assert data["extra"] == {"status_code": 502}

    def test_report_logger_stamps_scope(self, caplog):
        """Should attach the report scope to every record."""
        log = get_dqa_logger("dqa.test.scope", site="CHOP", etl_version="ETLv11", data_cycle="April 2016")

        with caplog.at_level(logging.INFO, logger="dqa.test.scope"):
            log.info("hello %s", "world")

        record = caplog.records[-1]
        assert record.getMessage() == "hello world"
        assert record.site == "CHOP"
        assert record.data_cycle == "April 2016"
        assert not hasattr(record, "table")

    def test_for_finding_adds_finding_fields(self, caplog, make_finding):
        """Should add table, field and issue code without changing the report logger."""
        log = get_dqa_logger("dqa.test.finding", site="CHOP")

        with caplog.at_level(logging.INFO, logger="dqa.test.finding"):
            log.for_finding(make_finding()).error("failed", extra={"status_code": 500})
            log.info("after")

        failed, after = caplog.records[-2:]
        assert (failed.site, failed.table, failed.field, failed.issue_code) == (
            "CHOP",
            "person",
            "person_id",
            "g4-001",
        )
        assert failed.status_code == 500
        assert not hasattr(after, "issue_code")

    def test_setup_logging_writes_file(self, tmp_path):
        """Should add a file handler when asked."""
        root = logging.getLogger()
        saved = (root.level, root.handlers[:])
        log_file = tmp_path / "dqa.log"

        try:
            setup_logging(verbose=True, log_file=str(log_file))
            logging.getLogger("dqa.test.file").debug("to the file")
            assert root.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            for handler in root.handlers[:]:
                handler.close()
                root.removeHandler(handler)
            root.setLevel(saved[0])
            for handler in saved[1]:
                root.addHandler(handler)

        assert "to the file" in log_file.read_text(encoding="utf-8")
