from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.agents import (
    AgentProviderFactory,
    get_agent_provider_factory,
    release_agent_session,
)
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .service import (
    create_session,
    delete_session,
    get_session,
    list_sessions,
    load_session,
    retry_session,
    update_session,
)
from .types import SessionCreateInput, SessionSummary, SessionUpdateInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.post("", response_model=SessionSummary, status_code=status.HTTP_201_CREATED)
async def post_session(
    payload: SessionCreateInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SessionSummary:
    try:
        return await create_session(
            session,
            organization_id=actor.organization_id,
            created_by_id=actor.user_id,
            repository_id=payload.repository_id,
            name=payload.name,
            branch_name=payload.branch_name,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.get("", response_model=list[SessionSummary])
async def get_sessions(
    repository_id: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[SessionSummary]:
    try:
        return await list_sessions(
            session,
            organization_id=actor.organization_id,
            repository_id=repository_id,
            status=status_filter,
            limit=limit,
            offset=offset,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.get("/{session_id}", response_model=SessionSummary)
async def get_session_by_id(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SessionSummary:
    try:
        return await get_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.patch("/{session_id}", response_model=SessionSummary)
async def patch_session(
    session_id: str,
    payload: SessionUpdateInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SessionSummary:
    try:
        return await update_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            name=payload.name,
            branch_name=payload.branch_name,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session_by_id(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    factory: AgentProviderFactory = Depends(get_agent_provider_factory),
) -> Response:
    try:
        row = await load_session(session, session_id=session_id, organization_id=actor.organization_id)
        await release_agent_session(str(row.id), factory=factory)
        await delete_session(
            session,
            session_id=row.id,
            organization_id=actor.organization_id,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/retry", response_model=SessionSummary)
async def post_session_retry(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SessionSummary:
    try:
        return await retry_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
        )
    except Exception as exc:
        _raise_http_error(exc)
