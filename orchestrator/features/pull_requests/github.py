from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from orchestrator.features.shared.credentials import redact

from .errors import GitHubApiError, InvalidGitHubUrlError
from .types import CreatedPullRequest, GitBranchOut, GitRepositoryOut

logger = logging.getLogger(__name__)

_REPO_PATTERN = re.compile(r"github\.com[/:]([^/]+)/([^/.]+)")


def parse_github_repo(url: str) -> tuple[str, str]:
    """Return (owner, repo) for https or ssh GitHub remotes."""
    match = _REPO_PATTERN.search(url or "")
    if match is None:
        raise InvalidGitHubUrlError(url)
    return match.group(1), match.group(2)


class GitHubClient:
    def __init__(
        self,
        *,
        api_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_url,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_pull_request(
        self,
        *,
        repo_url: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> CreatedPullRequest:
        owner, repo = parse_github_repo(repo_url)
        payload = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )
        logger.info("Opened pull request #%s on %s/%s", payload.get("number"), owner, repo)
        return CreatedPullRequest(url=str(payload["html_url"]), number=int(payload["number"]))

    async def list_repositories(self, *, page: int = 1, per_page: int = 100) -> list[GitRepositoryOut]:
        """Repositories the token's user can reach, most recently updated first."""
        payload = await self._request(
            "GET",
            "/user/repos",
            params={"sort": "updated", "direction": "desc", "per_page": per_page, "page": page, "type": "all"},
        )
        return [_to_repository(item) for item in payload or []]

    async def list_branches(
        self,
        *,
        owner: str,
        repo: str,
        page: int = 1,
        per_page: int = 100,
    ) -> list[GitBranchOut]:
        payload = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/branches",
            params={"per_page": per_page, "page": page},
        )
        return [
            GitBranchOut(
                name=str(item["name"]),
                sha=str((item.get("commit") or {}).get("sha") or ""),
                protected=bool(item.get("protected")),
            )
            for item in payload or []
        ]

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise GitHubApiError(f"GitHub API request failed: {redact(str(exc), self._token)}") from exc

        if response.is_error:
            message = ""
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                message = str(payload.get("message") or "")
            raise GitHubApiError(
                message or f"GitHub API error: {response.status_code}",
                upstream_status=response.status_code,
            )
        return response.json()


def _to_repository(item: dict[str, Any]) -> GitRepositoryOut:
    owner = item.get("owner") or {}
    return GitRepositoryOut(
        id=str(item["id"]),
        name=str(item["name"]),
        full_name=str(item.get("full_name") or item["name"]),
        private=bool(item.get("private")),
        description=item.get("description"),
        url=str(item.get("html_url") or ""),
        clone_url=str(item.get("clone_url") or ""),
        default_branch=str(item.get("default_branch") or "main"),
        owner=str(owner.get("login") or ""),
        owner_avatar=owner.get("avatar_url"),
        updated_at=item.get("updated_at"),
        language=item.get("language"),
    )
