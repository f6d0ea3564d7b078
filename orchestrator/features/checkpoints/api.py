from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.sandboxes import SandboxLifecycleManager, get_sandbox_manager
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .service import create_checkpoint, list_checkpoints, restore_checkpoint
from .types import CheckpointCreateInput, CheckpointListOut, CheckpointOut

router = APIRouter(prefix="/api/sandboxes/{sandbox_id}/checkpoints", tags=["checkpoints"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.get("", response_model=CheckpointListOut)
async def get_checkpoints(
    sandbox_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> CheckpointListOut:
    try:
        checkpoints = await list_checkpoints(
            session,
            sandbox_id=sandbox_id,
            organization_id=actor.organization_id,
            manager=manager,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return CheckpointListOut(checkpoints=checkpoints)


@router.post("", response_model=CheckpointOut, status_code=status.HTTP_201_CREATED)
async def post_checkpoint(
    sandbox_id: str,
    payload: CheckpointCreateInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> CheckpointOut:
    try:
        return await create_checkpoint(
            session,
            sandbox_id=sandbox_id,
            organization_id=actor.organization_id,
            label=payload.label,
            manager=manager,
            session_id=payload.session_id,
            checkpoint_type=payload.type,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.post("/{checkpoint_id}/restore", response_model=CheckpointOut)
async def post_checkpoint_restore(
    sandbox_id: str,
    checkpoint_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> CheckpointOut:
    try:
        return await restore_checkpoint(
            session,
            sandbox_id=sandbox_id,
            checkpoint_id=checkpoint_id,
            organization_id=actor.organization_id,
            manager=manager,
        )
    except Exception as exc:
        _raise_http_error(exc)
