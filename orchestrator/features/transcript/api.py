from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.session import get_db_session
from orchestrator.features.sessions.service import load_session
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .service import list_messages
from .types import MessageOut

router = APIRouter(prefix="/api/sessions/{session_id}/messages", tags=["transcript"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.get("", response_model=list[MessageOut])
async def get_messages(
    session_id: str,
    limit: int | None = Query(default=None, ge=1, le=1000),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[MessageOut]:
    try:
        row = await load_session(session, session_id=session_id, organization_id=actor.organization_id)
        return await list_messages(session, session_id=row.id, limit=limit)
    except Exception as exc:
        _raise_http_error(exc)
