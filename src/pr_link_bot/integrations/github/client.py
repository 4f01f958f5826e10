from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ...core.config import DEFAULT_GITHUB_API_BASE_URL
from .errors import GitHubAPIError, GitHubNotFoundError

logger = logging.getLogger(__name__)

GITHUB_ACCEPT_HEADER = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "pr-link-bot"


@dataclass(frozen=True)
class PullRequest:
    number: int
    title: str
    state: str
    html_url: str
    author_login: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PullRequest":
        number = payload.get("number")
        title = payload.get("title")
        if not isinstance(number, int) or not isinstance(title, str):
            raise GitHubAPIError("GitHub pull request payload missing number/title")
        user = payload.get("user")
        login = user.get("login") if isinstance(user, dict) else None
        return cls(
            number=number,
            title=title,
            state=str(payload.get("state") or ""),
            html_url=str(payload.get("html_url") or ""),
            author_login=login if isinstance(login, str) else None,
        )


class GitHubClient:
    def __init__(
        self,
        *,
        token: Optional[str] = None,
        base_url: str = DEFAULT_GITHUB_API_BASE_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        headers = {
            "Accept": GITHUB_ACCEPT_HEADER,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout_seconds
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _get_json(self, path: str) -> Any:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            body_preview = (exc.response.text or "").strip().replace("\n", " ")[:200]
            if status_code == 404:
                raise GitHubNotFoundError(
                    f"GitHub resource not found: GET {path}", status_code=status_code
                ) from exc
            raise GitHubAPIError(
                f"GitHub API request failed for GET {path}: "
                f"status={status_code} body={body_preview!r}",
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GitHubAPIError(
                f"GitHub API network error for GET {path}: {exc}"
            ) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubAPIError(
                f"GitHub API returned non-JSON response for GET {path}"
            ) from exc

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        payload = await self._get_json(f"/repos/{owner}/{repo}/pulls/{number}")
        if not isinstance(payload, dict):
            raise GitHubAPIError("GitHub pull request response must be a JSON object")
        pull = PullRequest.from_payload(payload)
        logger.debug("Fetched %s/%s#%s: %s", owner, repo, pull.number, pull.state)
        return pull
