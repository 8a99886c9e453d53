"""Run configuration for the feedback commands.

Values come from command-line flags, falling back to environment variables
(after loading a ``.env`` file):

    DQA_TOKEN / GITHUB_TOKEN   tracker credential
    DQA_CYCLE                  data cycle, e.g. "April 2016"
    DQA_OWNER                  tracker organization (default PEDSnet)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from dqa.lib.env import expand_env_vars, first_env, load_env_file, unresolved_env_vars
from dqa.lib.errors import ConfigurationError
from dqa.lib.feedback import DEFAULT_OWNER

logger = logging.getLogger(__name__)

__all__ = ["FeedbackConfig"]


@dataclass
class FeedbackConfig:
    data_cycle: str
    token: Optional[str] = None
    owner: str = DEFAULT_OWNER

    # Bind the run to a site/ETL version instead of reading it from the data.
    site: Optional[str] = None
    etl_version: Optional[str] = None

    # Generate mode switches
    post: bool = False
    print_summary: bool = False

    # Sync requires the tracker even without --post.
    require_token: bool = False

    per_page: int = 100
    base_url: str = "https://api.github.com"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.token:
            self.token = expand_env_vars(self.token)
            missing = unresolved_env_vars(self.token)
            if missing:
                raise ConfigurationError(
                    "The token refers to unset environment variables",
                    field="token",
                    details={"variables": missing},
                    suggestion="Set them in the environment or in the .env file.",
                )

        if not self.data_cycle:
            raise ConfigurationError(
                "The data cycle could not be detected",
                field="cycle",
                suggestion="Supply it using the --cycle option or DQA_CYCLE.",
            )

        if (self.post or self.require_token) and not self.token:
            raise ConfigurationError(
                "A token is required to access GitHub",
                field="token",
                suggestion="Supply it using the --token option, DQA_TOKEN or GITHUB_TOKEN.",
            )

        if bool(self.site) != bool(self.etl_version):
            raise ConfigurationError(
                "--site and --etl-version must be given together",
                details={"site": self.site, "etl_version": self.etl_version},
            )

        if self.per_page < 1 or self.per_page > 100:
            raise ConfigurationError(
                "per_page must be between 1 and 100", field="per_page", value=self.per_page
            )

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    @classmethod
    def from_env(cls, *, env_file: Optional[str] = None, **overrides: Any) -> "FeedbackConfig":
        """Build a configuration from explicit values, falling back to the environment.

        ``None`` overrides are treated as unset.
        """
        load_env_file(env_file)

        values = {k: v for k, v in overrides.items() if v is not None}
        values.setdefault("token", first_env("DQA_TOKEN", "GITHUB_TOKEN"))
        values.setdefault("data_cycle", first_env("DQA_CYCLE") or "")
        owner = first_env("DQA_OWNER")
        if owner:
            values.setdefault("owner", owner)

        return cls(**values)
