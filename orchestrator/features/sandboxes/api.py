from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .providers import default_sandbox_kind, list_sandbox_providers
from .service import SandboxLifecycleManager, get_sandbox_manager, to_sandbox_out
from .types import SandboxForSessionInput, SandboxForSessionOut, SandboxOut, SandboxProvidersOut

router = APIRouter(tags=["sandboxes"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.post("/api/sessions/{session_id}/sandbox", response_model=SandboxForSessionOut)
async def post_session_sandbox(
    session_id: str,
    response: Response,
    payload: SandboxForSessionInput | None = Body(default=None),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> SandboxForSessionOut:
    try:
        sandbox, created = await manager.get_or_create_for_session(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            provider=payload.provider if payload else None,
        )
    except Exception as exc:
        _raise_http_error(exc)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return SandboxForSessionOut(sandbox=to_sandbox_out(sandbox), created=created)


@router.get("/api/sandboxes/{sandbox_id}", response_model=SandboxOut)
async def get_sandbox_by_id(
    sandbox_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> SandboxOut:
    try:
        sandbox = await manager.get_sandbox(
            session,
            sandbox_id=sandbox_id,
            organization_id=actor.organization_id,
        )
        sandbox = await manager.refresh_status(session, sandbox=sandbox)
    except Exception as exc:
        _raise_http_error(exc)
    return to_sandbox_out(sandbox)


@router.post("/api/sandboxes/{sandbox_id}/pause", response_model=SandboxOut)
async def pause_sandbox(
    sandbox_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> SandboxOut:
    try:
        sandbox = await manager.get_sandbox(
            session,
            sandbox_id=sandbox_id,
            organization_id=actor.organization_id,
        )
        sandbox = await manager.pause(session, sandbox=sandbox)
    except Exception as exc:
        _raise_http_error(exc)
    return to_sandbox_out(sandbox)


@router.post("/api/sandboxes/{sandbox_id}/resume", response_model=SandboxOut)
async def resume_sandbox(
    sandbox_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> SandboxOut:
    try:
        sandbox = await manager.get_sandbox(
            session,
            sandbox_id=sandbox_id,
            organization_id=actor.organization_id,
        )
        sandbox = await manager.ensure_running(session, sandbox=sandbox)
    except Exception as exc:
        _raise_http_error(exc)
    return to_sandbox_out(sandbox)


@router.delete("/api/sandboxes/{sandbox_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sandbox(
    sandbox_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> Response:
    try:
        sandbox = await manager.get_sandbox(
            session,
            sandbox_id=sandbox_id,
            organization_id=actor.organization_id,
        )
        await manager.delete(session, sandbox=sandbox)
    except Exception as exc:
        _raise_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/api/sandbox-providers", response_model=SandboxProvidersOut)
async def get_sandbox_providers(
    _: RequestActor = Depends(get_request_actor),
) -> SandboxProvidersOut:
    try:
        return SandboxProvidersOut(
            providers=list_sandbox_providers(),
            default_provider=default_sandbox_kind(),
        )
    except Exception as exc:
        _raise_http_error(exc)
