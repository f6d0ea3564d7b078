"""Publish a ready session's sandbox changes as a GitHub pull request.

Also lists the repositories and branches a user's stored git connection
can reach, for picking what to onboard.

Each git step runs as its own sandbox command so a failure names the step
that broke. Nothing is recorded locally until the pull request exists.
"""
from __future__ import annotations

import logging
import shlex
from collections.abc import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.core.config import get_settings
from orchestrator.features.planning import PlanResult, parse_stored_plan
from orchestrator.features.repositories import load_repository, require_git_connection
from orchestrator.features.sandboxes import (
    SandboxLifecycleManager,
    SandboxNotReadyError,
    SandboxProvider,
)
from orchestrator.features.sessions.service import load_session, transition_session
from orchestrator.features.sessions.state_machine import SessionTrigger, next_status
from orchestrator.features.shared.credentials import embed_token, redact
from orchestrator.features.transcript import MessageRole, append_message, latest_plan_message

from .errors import GitStepError, NoChangesToCommitError, UnsupportedGitProviderError
from .github import GitHubClient
from .types import GitBranchListOut, GitRepositoryListOut, PullRequestOut

logger = logging.getLogger(__name__)

GitHubClientFactory = Callable[[str], GitHubClient]


def default_github_client(token: str) -> GitHubClient:
    return GitHubClient(api_url=get_settings().github_api_url, token=token)


def branch_for_session(session_id: UUID | str, branch_name: str | None = None) -> str:
    if branch_name and branch_name.strip():
        return branch_name.strip()
    return f"{get_settings().pr_branch_prefix}{session_id}"


def build_pr_description(plan: PlanResult | None, *, session_id: UUID | str, app_url: str) -> str:
    lines = ["## Summary", (plan.summary if plan and plan.summary else "Changes made in a feature session"), ""]
    if plan and plan.changes:
        lines.append("## Changes")
        lines.extend(f"- {change.description}" for change in plan.changes)
        lines.append("")
    lines.append("## Session")
    lines.append(f"[View session]({app_url.rstrip('/')}/session/{session_id})")
    return "\n".join(lines)


class _GitRunner:
    def __init__(self, provider: SandboxProvider, workspace_id: str, *, cwd: str, secrets: tuple[str, ...]):
        self._provider = provider
        self._workspace_id = workspace_id
        self._cwd = cwd
        self._secrets = secrets

    async def run(self, step: str, command: str) -> str:
        result = await self._provider.execute_command(self._workspace_id, command, cwd=self._cwd)
        if not result.ok:
            output = redact(f"{result.stderr}\n{result.stdout}".strip(), *self._secrets)
            logger.warning("Git %s failed in workspace %s: %s", step, self._workspace_id, output)
            raise GitStepError(step, output)
        return result.stdout


async def _commits_ahead(git: _GitRunner, base: str) -> int:
    output = await git.run("rev-list", f"git rev-list --count {shlex.quote(f'origin/{base}')}..HEAD")
    try:
        return int(output.strip() or "0")
    except ValueError as exc:
        raise GitStepError("rev-list", output.strip()[:200]) from exc


async def create_pull_request(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    user_id: str,
    manager: SandboxLifecycleManager,
    title: str | None = None,
    description: str | None = None,
    branch_name: str | None = None,
    github: GitHubClientFactory = default_github_client,
) -> PullRequestOut:
    settings = get_settings()
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    next_status(row.status, SessionTrigger.PULL_REQUEST_OPENED)

    repository = await load_repository(db, repository_id=row.repository_id)
    connection = await require_git_connection(db, user_id=user_id, provider=repository.provider)
    if row.sandbox_id is None:
        raise SandboxNotReadyError("Session has no sandbox")
    sandbox = await manager.get_sandbox(db, sandbox_id=row.sandbox_id)
    sandbox = await manager.ensure_running(db, sandbox=sandbox)

    plan_message = await latest_plan_message(db, session_id=row.id)
    plan = parse_stored_plan(plan_message.content) if plan_message else None

    branch = branch_for_session(row.id, branch_name)
    pr_title = (title or "").strip() or (plan.summary[:120] if plan and plan.summary else row.name)
    pr_body = description or build_pr_description(plan, session_id=row.id, app_url=settings.app_url)
    token = connection.access_token
    push_url = embed_token(repository.url, token)

    git = _GitRunner(
        manager.provider_for(sandbox),
        sandbox.workspace_id,
        cwd=settings.sandbox_repo_dir,
        secrets=(push_url, token),
    )
    base = repository.default_branch or "main"
    quoted_branch = shlex.quote(branch)
    await git.run("checkout", f"git checkout -b {quoted_branch} 2>/dev/null || git checkout {quoted_branch}")
    await git.run("add", "git add -A")
    status_output = await git.run("status", "git status --porcelain")
    if status_output.strip():
        commit_message = f"{pr_title}\n\nFeature session: {row.id}"
        await git.run("commit", f"git commit -m {shlex.quote(commit_message)}")
    else:
        # A clean tree can still hold commits from an earlier attempt whose push failed.
        ahead = await _commits_ahead(git, base)
        if ahead == 0:
            raise NoChangesToCommitError()
        logger.info("Publishing %d unpushed commit(s) for session %s", ahead, row.id)
    await git.run("remote", f"git remote set-url origin {shlex.quote(push_url)}")
    try:
        await git.run("push", f"git push -u origin {quoted_branch}")
    finally:
        try:
            await git.run("remote", f"git remote set-url origin {shlex.quote(repository.url)}")
        except GitStepError:
            logger.warning("Could not reset origin for workspace %s", sandbox.workspace_id)

    created = await github(token).create_pull_request(
        repo_url=repository.url,
        title=pr_title,
        body=pr_body,
        head=branch,
        base=base,
    )

    message = await append_message(
        db,
        session_id=row.id,
        role=MessageRole.SYSTEM,
        content=f"Pull request created: {created.url}",
        metadata={
            "type": "pull_request",
            "prUrl": created.url,
            "prNumber": created.number,
            "branch": branch,
        },
    )
    row = await transition_session(db, row=row, trigger=SessionTrigger.PULL_REQUEST_OPENED)
    logger.info("Session %s published as pull request %s", row.id, created.url)
    return PullRequestOut(
        url=created.url,
        number=created.number,
        title=pr_title,
        branch=branch,
        message_id=str(message.id),
        session_status=row.status,
    )


def _require_github(provider: str) -> None:
    if provider != "github":
        raise UnsupportedGitProviderError(provider)


async def list_provider_repositories(
    db: AsyncSession,
    *,
    user_id: str,
    provider: str,
    search: str | None = None,
    page: int = 1,
    github: GitHubClientFactory = default_github_client,
) -> GitRepositoryListOut:
    """List the repositories the user's stored connection can see, optionally filtered by name."""
    _require_github(provider)
    connection = await require_git_connection(db, user_id=user_id, provider=provider)
    repositories = await github(connection.access_token).list_repositories(page=page)
    needle = (search or "").strip().lower()
    if needle:
        repositories = [
            repo for repo in repositories if needle in repo.name.lower() or needle in repo.full_name.lower()
        ]
    return GitRepositoryListOut(repositories=repositories)


async def list_provider_branches(
    db: AsyncSession,
    *,
    user_id: str,
    provider: str,
    owner: str,
    repo: str,
    github: GitHubClientFactory = default_github_client,
) -> GitBranchListOut:
    _require_github(provider)
    connection = await require_git_connection(db, user_id=user_id, provider=provider)
    branches = await github(connection.access_token).list_branches(owner=owner, repo=repo)
    return GitBranchListOut(branches=branches)
