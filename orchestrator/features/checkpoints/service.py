from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Checkpoint, Sandbox
from orchestrator.features.sandboxes import (
    SandboxCommandError,
    SandboxLifecycleManager,
    SandboxNotReadyError,
    SandboxProviderUnavailableError,
)
from orchestrator.features.sessions.errors import SessionNotFoundError
from orchestrator.features.sessions.service import load_session
from orchestrator.features.shared.ids import to_uuid

from . import repo
from .errors import CheckpointNotRestorableError, CheckpointValidationError
from .types import CheckpointOut, CheckpointType

logger = logging.getLogger(__name__)

_SESSION_MISMATCH = "Session not found or does not belong to this sandbox"


def to_checkpoint_out(row: Checkpoint) -> CheckpointOut:
    return CheckpointOut(
        id=str(row.id),
        session_id=str(row.session_id) if row.session_id else None,
        sandbox_id=str(row.sandbox_id),
        label=row.label,
        type=row.type,
        provider_snapshot_id=row.provider_snapshot_id,
        restorable=bool(row.provider_snapshot_id),
        created_at=row.created_at,
    )


async def record_checkpoint(
    db: AsyncSession,
    *,
    sandbox: Sandbox,
    manager: SandboxLifecycleManager,
    label: str,
    session_id: UUID | str | None = None,
    checkpoint_type: CheckpointType | str = CheckpointType.MANUAL,
) -> Checkpoint:
    clean_label = " ".join(label.split())
    if not clean_label:
        raise CheckpointValidationError("label is required")
    checkpoint_type = CheckpointType(checkpoint_type)

    session_uuid = None
    if session_id is not None:
        session_uuid = to_uuid(session_id, field_name="session_id")
        try:
            session_row = await load_session(db, session_id=session_uuid)
        except SessionNotFoundError as exc:
            raise SessionNotFoundError(_SESSION_MISMATCH) from exc
        if session_row.sandbox_id != sandbox.id:
            raise SessionNotFoundError(_SESSION_MISMATCH)

    row = await repo.insert_checkpoint(
        db,
        sandbox_id=sandbox.id,
        session_id=session_uuid,
        label=clean_label,
        checkpoint_type=checkpoint_type.value,
    )

    # Best effort: the record stays useful as a transcript marker without a snapshot.
    if sandbox.workspace_id:
        try:
            snapshot_id = await manager.provider_for(sandbox).create_snapshot(
                sandbox.workspace_id,
                clean_label,
            )
        except (SandboxCommandError, SandboxProviderUnavailableError):
            logger.warning(
                "Snapshot failed for checkpoint %s on workspace %s",
                row.id,
                sandbox.workspace_id,
                exc_info=True,
            )
        else:
            row = await repo.set_provider_snapshot(db, row=row, provider_snapshot_id=snapshot_id)
    return row


async def create_checkpoint(
    db: AsyncSession,
    *,
    sandbox_id: UUID | str,
    organization_id: str,
    label: str,
    manager: SandboxLifecycleManager,
    session_id: UUID | str | None = None,
    checkpoint_type: CheckpointType | str = CheckpointType.MANUAL,
) -> CheckpointOut:
    sandbox = await manager.get_sandbox(db, sandbox_id=sandbox_id, organization_id=organization_id)
    row = await record_checkpoint(
        db,
        sandbox=sandbox,
        manager=manager,
        label=label,
        session_id=session_id,
        checkpoint_type=checkpoint_type,
    )
    return to_checkpoint_out(row)


async def list_checkpoints(
    db: AsyncSession,
    *,
    sandbox_id: UUID | str,
    organization_id: str,
    manager: SandboxLifecycleManager,
) -> list[CheckpointOut]:
    sandbox = await manager.get_sandbox(db, sandbox_id=sandbox_id, organization_id=organization_id)
    rows = await repo.list_checkpoints(db, sandbox_id=sandbox.id)
    return [to_checkpoint_out(row) for row in rows]


async def restore_checkpoint(
    db: AsyncSession,
    *,
    sandbox_id: UUID | str,
    checkpoint_id: UUID | str,
    organization_id: str,
    manager: SandboxLifecycleManager,
) -> CheckpointOut:
    sandbox = await manager.get_sandbox(db, sandbox_id=sandbox_id, organization_id=organization_id)
    row = await repo.get_checkpoint(
        db,
        checkpoint_id=to_uuid(checkpoint_id, field_name="checkpoint_id"),
        sandbox_id=sandbox.id,
    )
    if not row.provider_snapshot_id:
        raise CheckpointNotRestorableError()
    if not sandbox.workspace_id:
        raise SandboxNotReadyError("Sandbox has no workspace")

    provider = manager.provider_for(sandbox)
    await provider.restore_snapshot(sandbox.workspace_id, row.provider_snapshot_id)
    await provider.prepare_runtime(sandbox.workspace_id)
    await manager.touch(db, sandbox_id=sandbox.id)
    logger.info("Restored checkpoint %s on sandbox %s", row.id, sandbox.id)
    return to_checkpoint_out(row)
