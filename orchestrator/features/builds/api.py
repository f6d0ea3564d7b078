from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from orchestrator.db.session import get_db_session
from orchestrator.features.agents import encode_ndjson
from orchestrator.features.sandboxes import SandboxLifecycleManager, get_sandbox_manager
from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .orchestrator import BuildOrchestrator, BuildStream, get_build_orchestrator
from .service import start_build, start_chat
from .types import NDJSON_MEDIA_TYPE, BuildInput, ChatInput

router = APIRouter(prefix="/api/sessions/{session_id}", tags=["builds"])

_STREAM_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


async def _ndjson(events: BuildStream) -> AsyncIterator[bytes]:
    try:
        async for event in events:
            yield encode_ndjson(event)
    finally:
        await events.aclose()


def _stream_response(events: BuildStream) -> StreamingResponse:
    # The background close also runs when the client leaves before the first frame.
    return StreamingResponse(
        _ndjson(events),
        media_type=NDJSON_MEDIA_TYPE,
        headers=_STREAM_HEADERS,
        background=BackgroundTask(events.aclose),
    )


@router.post("/build")
async def post_build(
    session_id: str,
    payload: BuildInput | None = Body(default=None),
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    orchestrator: BuildOrchestrator = Depends(get_build_orchestrator),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> StreamingResponse:
    try:
        events = await start_build(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            orchestrator=orchestrator,
            manager=manager,
            provider_kind=payload.provider if payload else None,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return _stream_response(events)


@router.post("/chat")
async def post_chat(
    session_id: str,
    payload: ChatInput,
    actor: RequestActor = Depends(get_request_actor),
    session: AsyncSession = Depends(get_db_session),
    orchestrator: BuildOrchestrator = Depends(get_build_orchestrator),
    manager: SandboxLifecycleManager = Depends(get_sandbox_manager),
) -> StreamingResponse:
    try:
        events = await start_chat(
            session,
            session_id=session_id,
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            content=payload.content,
            orchestrator=orchestrator,
            manager=manager,
            provider_kind=payload.provider,
        )
    except Exception as exc:
        _raise_http_error(exc)
    return _stream_response(events)
