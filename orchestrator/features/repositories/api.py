from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .service import create_repository, get_repository, list_repositories
from .types import RepositoryCreateInput, RepositoryDetail

router = APIRouter(prefix="/api/repositories", tags=["repositories"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.get("", response_model=list[RepositoryDetail])
async def get_repositories(
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[RepositoryDetail]:
    return await list_repositories(session, organization_id=actor.organization_id)


@router.post("", response_model=RepositoryDetail, status_code=status.HTTP_201_CREATED)
async def post_repository(
    payload: RepositoryCreateInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> RepositoryDetail:
    try:
        return await create_repository(
            session,
            organization_id=actor.organization_id,
            name=payload.name,
            url=payload.url,
            provider=payload.provider,
            default_branch=payload.default_branch,
            context=payload.context,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.get("/{repository_id}", response_model=RepositoryDetail)
async def get_repository_by_id(
    repository_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> RepositoryDetail:
    try:
        return await get_repository(
            session,
            repository_id=repository_id,
            organization_id=actor.organization_id,
        )
    except Exception as exc:
        _raise_http_error(exc)
