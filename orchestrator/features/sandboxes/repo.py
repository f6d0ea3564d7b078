from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Repository, Sandbox

from .errors import SandboxNotFoundError


async def get_sandbox(
    session: AsyncSession,
    *,
    sandbox_id: UUID,
    organization_id: str | None = None,
) -> Sandbox:
    stmt = select(Sandbox).where(Sandbox.id == sandbox_id)
    if organization_id is not None:
        stmt = stmt.join(Repository, Repository.id == Sandbox.repository_id).where(
            Repository.organization_id == organization_id
        )
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        raise SandboxNotFoundError("Sandbox not found")
    return row


async def find_sandbox(session: AsyncSession, *, sandbox_id: UUID) -> Sandbox | None:
    return await session.get(Sandbox, sandbox_id)


async def find_sandbox_for_repository(
    session: AsyncSession,
    *,
    repository_id: UUID,
) -> Sandbox | None:
    stmt = select(Sandbox).where(Sandbox.repository_id == repository_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def insert_sandbox(
    session: AsyncSession,
    *,
    repository_id: UUID,
    workspace_id: str,
    provider: str,
    status: str,
    preview_url: str | None,
) -> Sandbox:
    """Raises IntegrityError when another writer already owns the repository's sandbox."""
    row = Sandbox(
        repository_id=repository_id,
        workspace_id=workspace_id,
        provider=provider,
        status=status,
        preview_url=preview_url,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def update_sandbox(session: AsyncSession, *, row: Sandbox, **values) -> Sandbox:
    for key, value in values.items():
        setattr(row, key, value)
    await session.commit()
    await session.refresh(row)
    return row


async def touch_sandbox(session: AsyncSession, *, sandbox_id: UUID) -> None:
    stmt = (
        update(Sandbox)
        .where(Sandbox.id == sandbox_id)
        .values(last_active_at=func.now())
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    await session.commit()


async def delete_sandbox(session: AsyncSession, *, row: Sandbox) -> None:
    await session.delete(row)
    await session.commit()


async def list_idle_sandboxes(session: AsyncSession, *, cutoff: datetime) -> list[Sandbox]:
    stmt = (
        select(Sandbox)
        .where(Sandbox.status == "running", Sandbox.last_active_at < cutoff)
        .order_by(Sandbox.last_active_at.asc())
    )
    return list((await session.execute(stmt)).scalars().all())
