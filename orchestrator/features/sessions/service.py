from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import FeatureSession
from orchestrator.features.repositories import load_repository
from orchestrator.features.shared.ids import to_uuid

from . import repo
from .errors import SessionPreconditionError, SessionValidationError
from .state_machine import SessionStatus, SessionTrigger, allowed_sources, next_status
from .types import SessionSummary

logger = logging.getLogger(__name__)

_MAX_PAGE_SIZE = 100


def to_summary(row: FeatureSession) -> SessionSummary:
    return SessionSummary(
        id=str(row.id),
        organization_id=row.organization_id,
        repository_id=str(row.repository_id),
        name=row.name,
        branch_name=row.branch_name,
        status=row.status,
        sandbox_id=str(row.sandbox_id) if row.sandbox_id else None,
        agent_provider=row.agent_provider,
        agent_session_id=row.agent_session_id,
        created_by_id=row.created_by_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _clean_required(value: str, *, field_name: str) -> str:
    cleaned = " ".join(value.split())
    if not cleaned:
        raise SessionValidationError(f"{field_name} cannot be empty.")
    return cleaned


async def load_session(
    session: AsyncSession,
    *,
    session_id: UUID | str,
    organization_id: str | None = None,
) -> FeatureSession:
    return await repo.get_session(
        session,
        session_id=to_uuid(session_id, field_name="session_id"),
        organization_id=organization_id,
    )


async def transition_session(
    session: AsyncSession,
    *,
    row: FeatureSession,
    trigger: SessionTrigger,
) -> FeatureSession:
    """Apply one table transition with a compare-and-set write.

    A concurrent writer that moved the session first makes this call fail with
    the status it observed, leaving the stored status untouched.
    """
    current = row.status
    target = next_status(current, trigger)
    applied = await repo.compare_and_set_status(
        session,
        session_id=row.id,
        expected=current,
        target=target.value,
    )
    if not applied:
        observed = await repo.read_status(session, session_id=row.id)
        raise SessionPreconditionError(
            current=observed or "deleted",
            required=allowed_sources(trigger),
            trigger=SessionTrigger(trigger).value,
        )
    row.status = target.value
    logger.info(
        "Session %s transitioned %s -> %s (%s)",
        row.id,
        current,
        target.value,
        SessionTrigger(trigger).value,
    )
    return row


async def create_session(
    session: AsyncSession,
    *,
    organization_id: str,
    created_by_id: str,
    repository_id: str | UUID,
    name: str,
    branch_name: str | None = None,
) -> SessionSummary:
    repository = await load_repository(
        session,
        repository_id=repository_id,
        organization_id=organization_id,
    )
    row = await repo.create_session(
        session,
        organization_id=organization_id,
        repository_id=repository.id,
        name=_clean_required(name, field_name="name"),
        branch_name=(branch_name or "").strip() or repository.default_branch,
        created_by_id=created_by_id,
    )
    return to_summary(row)


async def get_session(
    session: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
) -> SessionSummary:
    row = await load_session(session, session_id=session_id, organization_id=organization_id)
    return to_summary(row)


async def list_sessions(
    session: AsyncSession,
    *,
    organization_id: str,
    repository_id: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[SessionSummary]:
    if status is not None:
        try:
            status = SessionStatus(status).value
        except ValueError as exc:
            raise SessionValidationError(f"Unknown session status '{status}'.") from exc
    rows = await repo.list_sessions(
        session,
        organization_id=organization_id,
        repository_id=(
            to_uuid(repository_id, field_name="repository_id") if repository_id else None
        ),
        status=status,
        limit=max(1, min(limit, _MAX_PAGE_SIZE)),
        offset=max(0, offset),
    )
    return [to_summary(row) for row in rows]


async def update_session(
    session: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    name: str | None = None,
    branch_name: str | None = None,
) -> SessionSummary:
    values: dict[str, str] = {}
    if name is not None:
        values["name"] = _clean_required(name, field_name="name")
    if branch_name is not None:
        values["branch_name"] = _clean_required(branch_name, field_name="branch_name")
    if not values:
        raise SessionValidationError("No valid fields to update")
    row = await load_session(session, session_id=session_id, organization_id=organization_id)
    updated = await repo.update_session(session, row=row, **values)
    return to_summary(updated)


async def bind_sandbox(
    session: AsyncSession,
    *,
    row: FeatureSession,
    sandbox_id: UUID | None,
) -> FeatureSession:
    return await repo.update_session(session, row=row, sandbox_id=sandbox_id)


async def bind_agent_session(
    session: AsyncSession,
    *,
    row: FeatureSession,
    provider: str | None,
    agent_session_id: str | None,
) -> FeatureSession:
    return await repo.update_session(
        session,
        row=row,
        agent_provider=provider,
        agent_session_id=agent_session_id,
    )


async def unbind_sandbox_everywhere(session: AsyncSession, *, sandbox_id: UUID) -> int:
    rows = await repo.list_sessions_for_sandbox(session, sandbox_id=sandbox_id)
    for row in rows:
        await repo.update_session(
            session,
            row=row,
            sandbox_id=None,
            agent_provider=None,
            agent_session_id=None,
        )
    return len(rows)


async def retry_session(
    session: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
) -> SessionSummary:
    row = await load_session(session, session_id=session_id, organization_id=organization_id)
    row = await transition_session(session, row=row, trigger=SessionTrigger.RETRIED)
    return to_summary(row)


async def delete_session(
    session: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
) -> None:
    row = await load_session(session, session_id=session_id, organization_id=organization_id)
    await repo.delete_session(session, row=row)
