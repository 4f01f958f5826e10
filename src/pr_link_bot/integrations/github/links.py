from __future__ import annotations

from typing import Optional
from urllib.parse import SplitResult, urlsplit

PR_REPO_OWNER = "NixOS"
PR_REPO_NAME = "nixpkgs"
PR_PATH_PREFIX = f"/{PR_REPO_OWNER}/{PR_REPO_NAME}/pull/"
MAX_PR_NUMBER = 2**64 - 1


def _parse_absolute_url(text: str) -> Optional[SplitResult]:
    if not text or text != text.strip():
        return None
    if any(ch.isspace() for ch in text):
        return None
    try:
        parts = urlsplit(text)
        # Accessing the port validates it; urlsplit is lazy about that.
        _ = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc or not parts.hostname:
        return None
    return parts


def detect_pull_request_number(
    text: str, *, path_prefix: str = PR_PATH_PREFIX
) -> Optional[int]:
    """Return the PR number if ``text`` is exactly a PR URL for the repository.

    The whole message must be a single absolute URL; a link surrounded by
    other text is not a match. Only the path is inspected.
    """

    parts = _parse_absolute_url(text)
    if parts is None:
        return None
    if not parts.path.startswith(path_prefix):
        return None
    remainder = parts.path[len(path_prefix) :]
    if not remainder or not (remainder.isascii() and remainder.isdigit()):
        return None
    number = int(remainder)
    if number > MAX_PR_NUMBER:
        return None
    return number
