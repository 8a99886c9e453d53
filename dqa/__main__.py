"""CLI entry point for the DQA tools.

Usage:
    python -m dqa assign-rank-to-issues SecondaryReports/CHOP/ETLv4
    python -m dqa assign-rank-to-issues --rules rules.yaml SecondaryReports/CHOP/ETLv4
    python -m dqa feedback sync --token=abc123 --cycle="April 2016" SecondaryReports/CHOP/ETLv8
    python -m dqa feedback generate --post --token=abc123 --cycle="April 2016" SecondaryReports/CHOP/ETLv8

The token and data cycle may also be supplied through DQA_TOKEN (or
GITHUB_TOKEN) and DQA_CYCLE, directly or in a .env file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dqa import __version__
from dqa.lib.config import FeedbackConfig
from dqa.lib.errors import DQAError
from dqa.lib.github import GitHubClient
from dqa.lib.logging import setup_logging
from dqa.lib.rank_rules import default_rules, load_rules
from dqa.lib.ranking import RankClassifier
from dqa.lib.runner import assign_ranks_in_dir, generate_dir, sync_dir

logger = logging.getLogger("dqa")


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to the console",
    )


def _add_feedback_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", help="Directory of DQA results files")
    parser.add_argument("--token", help="Token used to authenticate with GitHub")
    parser.add_argument("--cycle", help="The data cycle for this report, e.g. 'April 2016'")
    parser.add_argument("--owner", help="GitHub organization owning the site repositories")
    parser.add_argument("--site", help="Site name (default: read from the results)")
    parser.add_argument("--etl-version", help="ETL version (default: read from the results)")
    parser.add_argument("--env-file", help="Load environment variables from this file")
    _add_logging_args(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dqa",
        description="Rank DQA findings and sync them with GitHub issues",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Assign ranks to detected issues
    dqa assign-rank-to-issues SecondaryReports/CHOP/ETLv4

    # Pull Cause and Status labels from GitHub into the local files
    dqa feedback sync --cycle "April 2016" SecondaryReports/CHOP/ETLv8

    # Preview the summary without posting anything
    dqa feedback generate --cycle "April 2016" SecondaryReports/CHOP/ETLv8

    # Post issues and the summary to GitHub
    dqa feedback generate --post --cycle "April 2016" SecondaryReports/CHOP/ETLv8
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command")

    rank = commands.add_parser(
        "assign-rank-to-issues",
        help="Assign ranks to detected issues in DQA analysis results",
    )
    rank.add_argument("path", help="Directory of DQA results files")
    rank.add_argument("--rules", help="YAML rule file to use instead of the built-in rules")
    _add_logging_args(rank)

    feedback = commands.add_parser("feedback", help="Feedback commands (sync, generate)")
    feedback_commands = feedback.add_subparsers(dest="feedback_command")

    sync = feedback_commands.add_parser(
        "sync",
        help="Sync Cause and Status labels from GitHub to the local CSV files",
    )
    _add_feedback_args(sync)

    generate = feedback_commands.add_parser(
        "generate",
        help="Generate and post a set of issues to GitHub",
    )
    _add_feedback_args(generate)
    generate.add_argument("--post", action="store_true", help="Post the issues to GitHub")
    generate.add_argument(
        "--print-summary",
        action="store_true",
        help="Print the summary to stdout rather than posting it",
    )

    return parser


def _feedback_config(args: argparse.Namespace, **extra: object) -> FeedbackConfig:
    return FeedbackConfig.from_env(
        env_file=args.env_file,
        token=args.token,
        data_cycle=args.cycle,
        owner=args.owner,
        site=args.site,
        etl_version=args.etl_version,
        **extra,
    )


def run_assign_ranks(args: argparse.Namespace) -> None:
    rules = load_rules(args.rules) if args.rules else default_rules()
    summary = assign_ranks_in_dir(args.path, RankClassifier(rules))

    changed = sum(s["changed"] for s in summary.values())
    logger.info("Processed %d files; %d ranks changed.", len(summary), changed)


def run_sync(args: argparse.Namespace) -> None:
    config = _feedback_config(args, require_token=True)

    with GitHubClient(config.token or "", base_url=config.base_url, timeout=config.timeout) as client:
        sync_dir(args.path, config, client)


def run_generate(args: argparse.Namespace) -> None:
    config = _feedback_config(args, post=args.post, print_summary=args.print_summary)

    if not config.post:
        generate_dir(args.path, config)
        return

    with GitHubClient(config.token or "", base_url=config.base_url, timeout=config.timeout) as client:
        generate_dir(args.path, config, client)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "assign-rank-to-issues":
        handler = run_assign_ranks
    elif args.command == "feedback" and args.feedback_command == "sync":
        handler = run_sync
    elif args.command == "feedback" and args.feedback_command == "generate":
        handler = run_generate
    else:
        parser.print_help()
        sys.exit(0)

    setup_logging(
        verbose=args.verbose,
        json_format=args.json_log,
        log_file=args.log_file,
    )

    try:
        handler(args)

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)

    except DQAError as e:
        logger.debug("Run failed", exc_info=True)
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
