"""Environment lookups for credentials and run settings.

Tokens may be given as ``${VAR}`` or ``$VAR`` references so they never have
to appear on a command line. A ``.env`` file next to the reports is read
with python-dotenv before the environment is consulted; variables already
set in the environment take precedence over the file.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "first_env", "load_env_file", "unresolved_env_vars"]

_REFERENCE = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(path: Optional[Union[str, Path]] = None) -> bool:
    """Load a ``.env`` file (searched for upwards from the cwd when ``path`` is None).

    Returns:
        True if a file was found and set at least one variable
    """
    return load_dotenv(dotenv_path=path, override=False)


def expand_env_vars(value: str) -> str:
    """Replace ``${VAR}``/``$VAR`` references with their values.

    References to unset variables are left as written; see
    ``unresolved_env_vars``.

    Example:
        >>> os.environ["DQA_TOKEN"] = "abc123"
        >>> expand_env_vars("${DQA_TOKEN}")
        'abc123'
    """

    def replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return os.environ.get(name, match.group(0))

    return _REFERENCE.sub(replace, value)


def unresolved_env_vars(value: str) -> List[str]:
    """Names of the variables ``value`` still refers to."""
    return [m.group(1) or m.group(2) for m in _REFERENCE.finditer(value)]


def first_env(*names: str) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None
