from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Message


async def insert_message(
    session: AsyncSession,
    *,
    session_id: UUID,
    role: str,
    content: str,
    user_id: str | None,
    phase: str | None,
    metadata: dict[str, Any] | None,
) -> Message:
    row = Message(
        session_id=session_id,
        user_id=user_id,
        role=role,
        content=content,
        phase=phase,
        meta=metadata,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def list_messages(
    session: AsyncSession,
    *,
    session_id: UUID,
    limit: int | None = None,
) -> list[Message]:
    stmt = (
        select(Message)
        .where(Message.session_id == session_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def list_messages_newest_first(
    session: AsyncSession,
    *,
    session_id: UUID,
    role: str | None = None,
) -> list[Message]:
    stmt = select(Message).where(Message.session_id == session_id)
    if role is not None:
        stmt = stmt.where(Message.role == role)
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc())
    return list((await session.execute(stmt)).scalars().all())


async def get_message(session: AsyncSession, *, message_id: UUID) -> Message | None:
    return await session.get(Message, message_id)
