from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .planner import get_plan_generator
from .service import generate_plan, get_latest_plan, resolve_approval
from .types import (
    ApprovalInput,
    ApprovalResolvedOut,
    LatestPlanOut,
    PlanGeneratedOut,
    PlanGenerator,
    PlanRequestInput,
)

router = APIRouter(prefix="/api/sessions/{session_id}/plan", tags=["planning"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.post("", response_model=PlanGeneratedOut)
async def post_plan(
    session_id: str,
    payload: PlanRequestInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    planner: PlanGenerator = Depends(get_plan_generator),
) -> PlanGeneratedOut:
    try:
        return await generate_plan(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            request=payload.request,
            planner=planner,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.get("", response_model=LatestPlanOut)
async def get_plan(
    session_id: str,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> LatestPlanOut:
    try:
        return await get_latest_plan(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
        )
    except Exception as exc:
        _raise_http_error(exc)


@router.post("/approve", response_model=ApprovalResolvedOut)
async def post_plan_approval(
    session_id: str,
    payload: ApprovalInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ApprovalResolvedOut:
    try:
        return await resolve_approval(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            reviewer_id=actor.user_id,
            action=payload.action,
            comment=payload.comment,
        )
    except Exception as exc:
        _raise_http_error(exc)
