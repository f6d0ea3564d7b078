from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import FeatureSession

from .errors import SessionNotFoundError


async def create_session(
    session: AsyncSession,
    *,
    organization_id: str,
    repository_id: UUID,
    name: str,
    branch_name: str,
    created_by_id: str,
) -> FeatureSession:
    row = FeatureSession(
        organization_id=organization_id,
        repository_id=repository_id,
        name=name,
        branch_name=branch_name,
        status="idle",
        created_by_id=created_by_id,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def get_session(
    session: AsyncSession,
    *,
    session_id: UUID,
    organization_id: str | None = None,
) -> FeatureSession:
    stmt = select(FeatureSession).where(FeatureSession.id == session_id)
    if organization_id is not None:
        stmt = stmt.where(FeatureSession.organization_id == organization_id)
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        raise SessionNotFoundError("Session not found")
    return row


async def list_sessions(
    session: AsyncSession,
    *,
    organization_id: str,
    repository_id: UUID | None,
    status: str | None,
    limit: int,
    offset: int,
) -> list[FeatureSession]:
    stmt = select(FeatureSession).where(FeatureSession.organization_id == organization_id)
    if repository_id is not None:
        stmt = stmt.where(FeatureSession.repository_id == repository_id)
    if status:
        stmt = stmt.where(FeatureSession.status == status)
    stmt = (
        stmt.order_by(FeatureSession.updated_at.desc(), FeatureSession.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_sessions_for_sandbox(
    session: AsyncSession,
    *,
    sandbox_id: UUID,
) -> list[FeatureSession]:
    stmt = select(FeatureSession).where(FeatureSession.sandbox_id == sandbox_id)
    return list((await session.execute(stmt)).scalars().all())


async def update_session(
    session: AsyncSession,
    *,
    row: FeatureSession,
    **values,
) -> FeatureSession:
    for key, value in values.items():
        setattr(row, key, value)
    await session.commit()
    await session.refresh(row)
    return row


async def compare_and_set_status(
    session: AsyncSession,
    *,
    session_id: UUID,
    expected: str,
    target: str,
) -> bool:
    """Single atomic write; False when another writer changed the status first."""
    stmt = (
        update(FeatureSession)
        .where(FeatureSession.id == session_id, FeatureSession.status == expected)
        .values(status=target)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return bool(result.rowcount)


async def read_status(session: AsyncSession, *, session_id: UUID) -> str | None:
    stmt = select(FeatureSession.status).where(FeatureSession.id == session_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def delete_session(session: AsyncSession, *, row: FeatureSession) -> None:
    await session.delete(row)
    await session.commit()
