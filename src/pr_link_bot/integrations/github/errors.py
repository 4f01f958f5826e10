from __future__ import annotations

from typing import Optional


class GitHubError(Exception):
    """Base GitHub integration error."""


class GitHubAPIError(GitHubError):
    """GitHub API request error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubNotFoundError(GitHubAPIError):
    """The requested GitHub resource does not exist."""
