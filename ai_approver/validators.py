"""
Validation helpers for the AI Approver configuration.

Configuration dataclasses call these from ``__post_init__``; each raises
``ValueError`` with the offending field name.
"""

import re
from typing import Tuple

_REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def validate_required_string(value: str, field_name: str) -> None:
    """Raise if a required string field is empty."""
    if not value:
        raise ValueError(f"{field_name} is required")


def validate_positive_int(value: int, field_name: str) -> None:
    if not isinstance(value, int) or value <= 0:
        raise ValueError(f"{field_name} must be positive")


def validate_non_negative_int(value: int, field_name: str) -> None:
    if not isinstance(value, int) or value < 0:
        raise ValueError(f"{field_name} must not be negative")


def validate_range(value: float, min_val: float, max_val: float, field_name: str) -> None:
    """Raise if ``value`` is outside the inclusive range ``[min_val, max_val]``."""
    if not min_val <= value <= max_val:
        raise ValueError(f"{field_name} must be between {min_val} and {max_val}")


def validate_github_token_format(token: str) -> bool:
    """Check the shape of a GitHub token.

    Classic tokens are 40 characters; newer ones carry a ``gh?_`` or
    ``github_pat_`` prefix.
    """
    if not token or not isinstance(token, str):
        return False
    return len(token) == 40 or token.startswith(('ghp_', 'ghs_', 'gho_', 'ghu_', 'github_pat_'))


def validate_url(url: str, field_name: str) -> None:
    if not url or not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise ValueError(f"{field_name} must be an http(s) URL")


def parse_repository(repository: str) -> Tuple[str, str]:
    """Split ``owner/repo`` into its parts.

    Raises:
        ValueError: If the value is not of the form ``owner/repo``
    """
    if not repository or not _REPOSITORY_PATTERN.match(repository.strip()):
        raise ValueError(f"Repository must be in format owner/repo, got: {repository!r}")
    owner, repo = repository.strip().split("/", 1)
    return owner, repo


def parse_pull_number(value) -> int:
    """Parse a pull request number from CLI or environment input."""
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"Invalid pull request number: {value!r}")
    if number <= 0:
        raise ValueError(f"Invalid pull request number: {value!r}")
    return number
