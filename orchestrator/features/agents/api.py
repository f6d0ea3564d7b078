from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.sandboxes import SandboxLifecycleManager, get_sandbox_manager
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .factory import AgentProviderFactory
from .service import (
    cancel_agent_operation,
    create_agent_session,
    delete_agent_session,
    get_agent_provider_factory,
    get_agent_session,
    to_agent_session_out,
)
from .types import (
    AgentSessionCreateInput,
    AgentSessionLookupOut,
    AgentSessionOut,
    stream_event_schema,
)

router = APIRouter(tags=["agents"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.get("/api/sessions/{session_id}/agent-session", response_model=AgentSessionLookupOut)
async def get_session_agent(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    factory: AgentProviderFactory = Depends(get_agent_provider_factory),
) -> AgentSessionLookupOut:
    try:
        agent_session = await get_agent_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            factory=factory,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return AgentSessionLookupOut(
        agent_session=to_agent_session_out(agent_session) if agent_session else None
    )


@router.post(
    "/api/sessions/{session_id}/agent-session",
    response_model=AgentSessionOut,
    status_code=status.HTTP_201_CREATED,
)
async def post_session_agent(
    session_id: str,
    payload: AgentSessionCreateInput | None = Body(default=None),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    factory: AgentProviderFactory = Depends(get_agent_provider_factory),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> AgentSessionOut:
    payload = payload or AgentSessionCreateInput()
    try:
        agent_session = await create_agent_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            factory=factory,
            manager=manager,
            provider_kind=payload.provider,
            model=payload.model,
            system_prompt=payload.system_prompt,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return to_agent_session_out(agent_session)


@router.delete(
    "/api/sessions/{session_id}/agent-session",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_session_agent(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    factory: AgentProviderFactory = Depends(get_agent_provider_factory),
) -> Response:
    try:
        await delete_agent_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            factory=factory,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/api/sessions/{session_id}/agent-session/cancel",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def cancel_session_agent(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    factory: AgentProviderFactory = Depends(get_agent_provider_factory),
) -> Response:
    try:
        await cancel_agent_operation(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            factory=factory,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/api/agent/stream/schema")
async def get_stream_schema() -> dict[str, Any]:
    return stream_event_schema()
