from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Approval


async def insert_approval(
    session: AsyncSession,
    *,
    session_id: UUID,
    message_id: UUID,
) -> Approval:
    row = Approval(session_id=session_id, message_id=message_id, status="pending")
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def supersede_pending(session: AsyncSession, *, session_id: UUID) -> int:
    stmt = (
        update(Approval)
        .where(Approval.session_id == session_id, Approval.status == "pending")
        .values(status="superseded", reviewed_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return int(result.rowcount or 0)


async def list_pending(session: AsyncSession, *, session_id: UUID) -> list[Approval]:
    stmt = (
        select(Approval)
        .where(Approval.session_id == session_id, Approval.status == "pending")
        .order_by(Approval.created_at.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def resolve_pending(
    session: AsyncSession,
    *,
    approval_id: UUID,
    status: str,
    reviewer_id: str,
    comment: str | None,
    reviewed_at: datetime,
) -> bool:
    """Compare-and-set from `pending`; False when another reviewer resolved it first."""
    stmt = (
        update(Approval)
        .where(Approval.id == approval_id, Approval.status == "pending")
        .values(
            status=status,
            reviewer_id=reviewer_id,
            comment=comment,
            reviewed_at=reviewed_at,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return bool(result.rowcount)


async def get_approval(session: AsyncSession, *, approval_id: UUID) -> Approval | None:
    stmt = select(Approval).where(Approval.id == approval_id).execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one_or_none()


async def find_approval_for_message(session: AsyncSession, *, message_id: UUID) -> Approval | None:
    stmt = (
        select(Approval)
        .where(Approval.message_id == message_id)
        .order_by(Approval.created_at.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()
