from .client import GitHubClient, PullRequest
from .errors import GitHubAPIError, GitHubError, GitHubNotFoundError
from .links import (
    PR_PATH_PREFIX,
    PR_REPO_NAME,
    PR_REPO_OWNER,
    detect_pull_request_number,
)

__all__ = [
    "GitHubClient",
    "PullRequest",
    "GitHubError",
    "GitHubAPIError",
    "GitHubNotFoundError",
    "PR_PATH_PREFIX",
    "PR_REPO_OWNER",
    "PR_REPO_NAME",
    "detect_pull_request_number",
]
