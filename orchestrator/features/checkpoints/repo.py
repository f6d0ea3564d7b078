from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Checkpoint, Sandbox

from .errors import CheckpointNotFoundError


async def insert_checkpoint(
    session: AsyncSession,
    *,
    sandbox_id: UUID,
    session_id: UUID | None,
    label: str,
    checkpoint_type: str,
) -> Checkpoint:
    """Insert the record and move the sandbox's last-checkpoint pointer in one commit."""
    row = Checkpoint(
        sandbox_id=sandbox_id,
        session_id=session_id,
        label=label,
        type=checkpoint_type,
    )
    session.add(row)
    await session.flush()
    await session.execute(
        update(Sandbox)
        .where(Sandbox.id == sandbox_id)
        .values(last_checkpoint_id=row.id)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(row)
    return row


async def set_provider_snapshot(
    session: AsyncSession,
    *,
    row: Checkpoint,
    provider_snapshot_id: str,
) -> Checkpoint:
    row.provider_snapshot_id = provider_snapshot_id
    await session.commit()
    await session.refresh(row)
    return row


async def list_checkpoints(session: AsyncSession, *, sandbox_id: UUID) -> list[Checkpoint]:
    stmt = (
        select(Checkpoint)
        .where(Checkpoint.sandbox_id == sandbox_id)
        .order_by(Checkpoint.created_at.desc(), Checkpoint.id.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_checkpoint(
    session: AsyncSession,
    *,
    checkpoint_id: UUID,
    sandbox_id: UUID,
) -> Checkpoint:
    stmt = select(Checkpoint).where(
        Checkpoint.id == checkpoint_id,
        Checkpoint.sandbox_id == sandbox_id,
    )
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        raise CheckpointNotFoundError("Checkpoint not found")
    return row
