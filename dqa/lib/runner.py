"""Directory-level command flows.

Each function processes a site's report directory file by file, in name
order, and returns a summary dict per file. Files are rewritten only when
something in them changed.

Fatal errors (``ConsistencyError``, ``ResultsFormatError``, failed issue
fetches) propagate to the caller; files finished before the error have
already been written. Per-finding tracker failures while generating are
logged and counted, and the run continues.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO, Any, Dict, List, Mapping, Optional, Tuple, Union

from dqa.lib.config import FeedbackConfig
from dqa.lib.errors import ConfigurationError, TrackerError
from dqa.lib.feedback import FeedbackReport
from dqa.lib.logging import get_dqa_logger
from dqa.lib.pagination import PaginationConfig
from dqa.lib.ranking import RankClassifier, apply_ranks
from dqa.lib.results import Finding, ResultsFile, read_from_dir, write_results
from dqa.lib.tracker import TrackerClient

logger = logging.getLogger(__name__)

__all__ = [
    "assign_ranks_in_dir",
    "generate_dir",
    "resolve_scope",
    "save_with_fallback",
    "sync_dir",
]


def assign_ranks_in_dir(
    directory: Union[str, Path],
    classifier: RankClassifier,
) -> Dict[str, Dict[str, Any]]:
    """Assign ranks to the findings of every readable file in ``directory``.

    Unreadable files are skipped with a warning, as are files that cannot
    be written back.
    """
    summary: Dict[str, Dict[str, Any]] = {}

    for name, results in read_from_dir(directory, strict=False).items():
        assignment = apply_ranks(results.findings, classifier)

        for match in assignment.matches:
            f = match.finding
            if match.changed:
                action = f"set rank to {match.rank} (from '{match.previous}')"
            else:
                action = "nothing (already set)"
            logger.info(
                "Rule matched: scope=%s file=%s line=%d table=%s field=%s "
                "issue_code=%s prevalence=%s rank=%s action=%s",
                match.scope,
                name,
                match.line,
                f.table,
                f.field,
                f.issue_code,
                f.prevalence,
                match.rank,
                action,
            )

        if assignment.unmatched:
            logger.info(
                "%d findings in '%s' matched no rule and were left unchanged",
                len(assignment.unmatched),
                name,
            )

        written = False
        if assignment.changed:
            try:
                results.save()
                written = True
            except OSError as e:
                logger.error("Error writing ranks to '%s': %s", name, e)

        summary[name] = {
            "matched": len(assignment.matches),
            "changed": len(assignment.changed),
            "unmatched": len(assignment.unmatched),
            "written": written,
        }

    return summary


def resolve_scope(
    files: Mapping[str, ResultsFile],
    config: FeedbackConfig,
) -> Tuple[str, str]:
    """Determine the site and ETL version a run is bound to.

    Explicit configuration wins; otherwise the first finding that names a
    site decides.
    """
    if config.site and config.etl_version:
        return config.site, config.etl_version

    for results in files.values():
        for finding in results.findings:
            if finding.site:
                return finding.site, finding.etl_version

    raise ConfigurationError(
        "Could not detect the site and ETL version from the results",
        suggestion="Supply them using --site and --etl-version.",
    )


def save_with_fallback(
    results: ResultsFile,
    affected: List[Finding],
    out: IO[str],
) -> bool:
    """Write ``results`` back to its file, printing ``affected`` if that fails.

    Tracker ids obtained during the run are only recorded in memory until
    the file is written; printing them keeps them from being lost.
    """
    try:
        results.save()
        return True
    except OSError as e:
        logger.error("Error writing results to '%s': %s", results.name, e)

    logger.warning(
        "Falling back to printing the results so they can be copied into '%s'.",
        results.name,
    )
    write_results(out, affected, columns=results.columns)
    out.flush()
    return False


def _make_report(
    files: Mapping[str, ResultsFile],
    config: FeedbackConfig,
    client: Optional[TrackerClient],
) -> FeedbackReport:
    site, etl_version = resolve_scope(files, config)
    return FeedbackReport(
        site,
        etl_version,
        config.data_cycle,
        client,
        owner=config.owner,
        pagination=PaginationConfig(page_size=config.per_page),
    )


def sync_dir(
    directory: Union[str, Path],
    config: FeedbackConfig,
    client: TrackerClient,
    *,
    out: Optional[IO[str]] = None,
) -> Dict[str, Dict[str, Any]]:
    """Pull Cause and Status labels from the tracker into local results files."""
    if out is None:
        out = sys.stdout
    files = read_from_dir(directory)
    summary: Dict[str, Dict[str, Any]] = {}
    if not files:
        logger.info("No results files found in '%s'.", directory)
        return summary

    report = _make_report(files, config, client)
    index = report.fetch_issue_index()

    for name, results in files.items():
        result = report.sync(results.findings, index)

        if not result:
            logger.info("No changes to sync for '%s'.", name)
            summary[name] = {"cause_changes": 0, "status_changes": 0, "written": False}
            continue

        changed: List[Finding] = []
        for change in result.changes:
            if not any(f is change.finding for f in changed):
                changed.append(change.finding)

        written = save_with_fallback(results, changed, out)
        if written:
            logger.info("Synced labels to '%s'.", name)

        summary[name] = {
            "cause_changes": result.cause_changes,
            "status_changes": result.status_changes,
            "written": written,
        }

    return summary


def generate_dir(
    directory: Union[str, Path],
    config: FeedbackConfig,
    client: Optional[TrackerClient] = None,
    *,
    out: Optional[IO[str]] = None,
) -> Dict[str, Any]:
    """Draft (and with ``config.post``, publish) tracker issues for a directory.

    Returns a dict with a per-file summary under ``files`` and the summary
    issue outcome under ``summary``.
    """
    if out is None:
        out = sys.stdout
    files = read_from_dir(directory)
    outcome: Dict[str, Any] = {"files": {}, "summary": None}
    if not files:
        logger.info("No results files found in '%s'.", directory)
        return outcome

    report = _make_report(files, config, client)
    log = get_dqa_logger(
        __name__,
        site=report.site,
        etl_version=report.etl_version,
        data_cycle=report.data_cycle,
    )

    # Reject foreign findings before anything is posted.
    for results in files.values():
        for finding in results.issues():
            report.check_scope(finding)

    for name, results in files.items():
        issues: List[Finding] = []
        posted = labeled = failed = 0

        for finding in results.findings:
            # Not an issue; not included in the summary either.
            if not finding.is_issue:
                continue

            issues.append(finding)
            request = report.build_issue(finding)

            if not config.post:
                continue

            try:
                if finding.github_id is None:
                    issue = report.post_issue(request)
                    finding.bind_tracker_id(issue.number)
                    posted += 1
                else:
                    report.ensure_labels(finding.github_id, request.labels)
                    labeled += 1
            except TrackerError as e:
                failed += 1
                log.for_finding(finding).error(
                    "Error publishing issue for site=%s table=%s field=%s issue_code=%s: %s",
                    report.site,
                    finding.table,
                    finding.field,
                    finding.issue_code,
                    e,
                    extra={"operation": e.operation, "status_code": e.status_code},
                )

        file_summary: Dict[str, Any] = {
            "issues": len(issues),
            "posted": posted,
            "labeled": labeled,
            "failed": failed,
            "written": False,
        }
        outcome["files"][name] = file_summary

        if not issues:
            logger.info("No new issues for '%s'", name)
            continue

        logger.info("%d issues found in '%s'", len(issues), name)
        if failed:
            log.warning(
                "'%s' is only partially synchronized: %d of %d issues failed",
                name,
                failed,
                len(issues),
            )

        if config.post:
            file_summary["written"] = save_with_fallback(results, issues, out)
            if file_summary["written"]:
                logger.info("Saved new issue IDs to '%s'", name)

    outcome["summary"] = _publish_summary(report, config, out)
    return outcome


def _publish_summary(
    report: FeedbackReport,
    config: FeedbackConfig,
    out: IO[str],
) -> Optional[Dict[str, Any]]:
    if len(report) == 0:
        logger.info("No issues to report.")
        return None

    request = report.build_summary_issue()
    summary: Dict[str, Any] = {"title": request.title, "url": None, "posted": False}

    existing = None
    if config.post:
        existing = report.fetch_summary_issue(request)
        if existing is None:
            logger.info("No summary issue found.")
        else:
            logger.info("Summary issue already exists: %s", existing.html_url)
            summary["url"] = existing.html_url

    if not config.post or config.print_summary:
        out.write(request.body)
        out.write("\n")
        return summary

    if existing is None:
        try:
            issue = report.post_issue(request)
        except TrackerError as e:
            raise TrackerError(
                "Error posting summary issue to GitHub",
                operation="create_issue",
                status_code=e.status_code,
                cause=e,
                suggestion="This can be safely retried without duplicating issues.",
            ) from e

        logger.info("Summary issue URL: %s", issue.html_url)
        summary["url"] = issue.html_url
        summary["posted"] = True

    return summary
