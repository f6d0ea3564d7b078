"""Append-only session transcript.

`append_message` is the only write path; nothing here updates or deletes a
message once it exists.
"""
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Message
from orchestrator.features.shared.ids import to_uuid

from . import repo
from .types import PLAN_ARTIFACT_TYPE, MessageOut, MessagePhase, MessageRole


def to_message_out(row: Message) -> MessageOut:
    return MessageOut(
        id=str(row.id),
        session_id=str(row.session_id),
        user_id=row.user_id,
        role=row.role,
        content=row.content,
        phase=row.phase,
        metadata=row.meta,
        created_at=row.created_at,
    )


async def append_message(
    session: AsyncSession,
    *,
    session_id: UUID | str,
    role: MessageRole | str,
    content: str,
    user_id: str | None = None,
    phase: MessagePhase | str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Message:
    return await repo.insert_message(
        session,
        session_id=to_uuid(session_id, field_name="session_id"),
        role=MessageRole(role).value,
        content=content,
        user_id=user_id,
        phase=MessagePhase(phase).value if phase is not None else None,
        metadata=metadata,
    )


async def list_messages(
    session: AsyncSession,
    *,
    session_id: UUID | str,
    limit: int | None = None,
) -> list[MessageOut]:
    rows = await repo.list_messages(
        session,
        session_id=to_uuid(session_id, field_name="session_id"),
        limit=limit,
    )
    return [to_message_out(row) for row in rows]


def is_plan_artifact(row: Message) -> bool:
    return isinstance(row.meta, dict) and row.meta.get("type") == PLAN_ARTIFACT_TYPE


async def latest_plan_message(session: AsyncSession, *, session_id: UUID | str) -> Message | None:
    rows = await repo.list_messages_newest_first(
        session,
        session_id=to_uuid(session_id, field_name="session_id"),
        role=MessageRole.ASSISTANT.value,
    )
    for row in rows:
        if is_plan_artifact(row):
            return row
    return None


async def get_message(session: AsyncSession, *, message_id: UUID | str) -> Message | None:
    return await repo.get_message(session, message_id=to_uuid(message_id, field_name="message_id"))
