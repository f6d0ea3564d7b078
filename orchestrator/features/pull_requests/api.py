from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.sandboxes import SandboxLifecycleManager, get_sandbox_manager
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .service import create_pull_request, list_provider_branches, list_provider_repositories
from .types import GitBranchListOut, GitRepositoryListOut, PullRequestInput, PullRequestOut

router = APIRouter(prefix="/api/sessions/{session_id}/pr", tags=["pull_requests"])
git_router = APIRouter(prefix="/api/git/{provider}", tags=["git"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.post("", response_model=PullRequestOut)
async def post_pull_request(
    session_id: str,
    payload: PullRequestInput | None = Body(default=None),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> PullRequestOut:
    payload = payload or PullRequestInput()
    try:
        return await create_pull_request(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            manager=manager,
            title=payload.title,
            description=payload.description,
            branch_name=payload.branch_name,
        )
    except Exception as exc:
        _raise_http_error(exc)


@git_router.get("/repos", response_model=GitRepositoryListOut)
async def get_provider_repositories(
    provider: str,
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> GitRepositoryListOut:
    try:
        return await list_provider_repositories(
            session,
            user_id=actor.user_id,
            provider=provider,
            search=search,
            page=page,
        )
    except Exception as exc:
        _raise_http_error(exc)


@git_router.get("/branches", response_model=GitBranchListOut)
async def get_provider_branches(
    provider: str,
    owner: str = Query(min_length=1),
    repo: str = Query(min_length=1),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> GitBranchListOut:
    try:
        return await list_provider_branches(
            session,
            user_id=actor.user_id,
            provider=provider,
            owner=owner,
            repo=repo,
        )
    except Exception as exc:
        _raise_http_error(exc)
