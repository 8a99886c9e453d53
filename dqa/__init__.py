"""Data quality assessment (DQA) rank and feedback tools.

Assigns ranks to findings in DQA results files and keeps their cause,
status and rank in step with the site's GitHub issues.

Usage:
    python -m dqa assign-rank-to-issues SecondaryReports/CHOP/ETLv4
    python -m dqa feedback sync --cycle "April 2016" SecondaryReports/CHOP/ETLv8
    python -m dqa feedback generate --post --cycle "April 2016" SecondaryReports/CHOP/ETLv8
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
