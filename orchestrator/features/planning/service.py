from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Approval, FeatureSession, Message
from orchestrator.features.repositories import build_agent_context, load_repository
from orchestrator.features.sessions.errors import SessionPreconditionError
from orchestrator.features.sessions.service import load_session, transition_session
from orchestrator.features.sessions.state_machine import SessionTrigger, next_status
from orchestrator.features.shared.errors import OrchestrationError
from orchestrator.features.transcript import (
    PLAN_ARTIFACT_TYPE,
    MessagePhase,
    MessageRole,
    append_message,
    latest_plan_message,
)

from . import repo
from .errors import (
    ApprovalConflictError,
    ApprovalNotFoundError,
    PlanGenerationError,
    PlanNotApprovedError,
    PlanValidationError,
)
from .types import (
    ApprovalAction,
    ApprovalOut,
    ApprovalResolvedOut,
    ApprovalStatus,
    LatestPlanOut,
    PlanGeneratedOut,
    PlanGenerator,
    PlanResult,
)

logger = logging.getLogger(__name__)


def to_approval_out(row: Approval) -> ApprovalOut:
    return ApprovalOut(
        id=str(row.id),
        session_id=str(row.session_id),
        message_id=str(row.message_id),
        status=row.status,
        reviewer_id=row.reviewer_id,
        comment=row.comment,
        created_at=row.created_at,
        reviewed_at=row.reviewed_at,
    )


def parse_stored_plan(content: str) -> PlanResult:
    try:
        return PlanResult.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError):
        return PlanResult(summary=content, changes=[])


async def generate_plan(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    user_id: str,
    request: str,
    planner: PlanGenerator,
) -> PlanGeneratedOut:
    text = request.strip()
    if not text:
        raise PlanValidationError("request is required and must be a non-empty string")

    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    next_status(row.status, SessionTrigger.PLAN_REQUESTED)
    repository = await load_repository(db, repository_id=row.repository_id)
    context = build_agent_context(repository, branch=row.branch_name)

    await append_message(
        db,
        session_id=row.id,
        role=MessageRole.USER,
        content=text,
        user_id=user_id,
        phase=MessagePhase.PLANNING,
    )
    row = await transition_session(db, row=row, trigger=SessionTrigger.PLAN_REQUESTED)

    try:
        plan = await planner(text, context)
    except Exception as exc:
        logger.warning("Plan generation failed for session %s", row.id, exc_info=True)
        await _roll_back_to_idle(db, row=row)
        if isinstance(exc, OrchestrationError):
            raise
        raise PlanGenerationError(f"Plan generation failed: {exc}") from exc

    message = await append_message(
        db,
        session_id=row.id,
        role=MessageRole.ASSISTANT,
        content=plan.model_dump_json(),
        phase=MessagePhase.PLANNING,
        metadata={"type": PLAN_ARTIFACT_TYPE},
    )
    superseded = await repo.supersede_pending(db, session_id=row.id)
    if superseded:
        logger.info("Superseded %s pending approvals for session %s", superseded, row.id)
    approval = await repo.insert_approval(db, session_id=row.id, message_id=message.id)
    row = await transition_session(db, row=row, trigger=SessionTrigger.PLAN_GENERATED)

    return PlanGeneratedOut(
        plan=plan,
        message_id=str(message.id),
        approval_id=str(approval.id),
        status=row.status,
    )


async def _roll_back_to_idle(db: AsyncSession, *, row: FeatureSession) -> None:
    try:
        await transition_session(db, row=row, trigger=SessionTrigger.PLAN_FAILED)
    except SessionPreconditionError:
        logger.warning("Session %s left planning before the failure was recorded", row.id)


async def get_latest_plan(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
) -> LatestPlanOut:
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    message = await latest_plan_message(db, session_id=row.id)
    if message is None:
        return LatestPlanOut(plan=None)
    approval = await repo.find_approval_for_message(db, message_id=message.id)
    return LatestPlanOut(
        plan=parse_stored_plan(message.content),
        message_id=str(message.id),
        approval=to_approval_out(approval) if approval else None,
    )


async def load_approved_plan(db: AsyncSession, *, session_id: UUID) -> tuple[Message, PlanResult]:
    message = await latest_plan_message(db, session_id=session_id)
    if message is None:
        raise PlanNotApprovedError()
    approval = await repo.find_approval_for_message(db, message_id=message.id)
    if approval is None or approval.status != ApprovalStatus.APPROVED.value:
        raise PlanNotApprovedError()
    return message, parse_stored_plan(message.content)


def _decision_message(action: ApprovalAction, comment: str | None) -> str:
    if action == ApprovalAction.APPROVE:
        return f'Plan approved: "{comment}"' if comment else "Plan approved. Starting build..."
    return f'Plan rejected: "{comment}"' if comment else "Plan rejected. Please submit a new request."


async def resolve_approval(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    reviewer_id: str,
    action: ApprovalAction | str,
    comment: str | None = None,
) -> ApprovalResolvedOut:
    try:
        action = ApprovalAction(action)
    except ValueError as exc:
        raise PlanValidationError("action must be 'approve' or 'reject'") from exc
    comment = (comment or "").strip() or None

    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    pending = await repo.list_pending(db, session_id=row.id)
    if not pending:
        raise ApprovalNotFoundError()
    if len(pending) > 1:
        raise ApprovalConflictError("Multiple pending approvals found for this session")

    trigger = SessionTrigger.APPROVED if action == ApprovalAction.APPROVE else SessionTrigger.REJECTED
    next_status(row.status, trigger)

    approval = pending[0]
    status = ApprovalStatus.APPROVED if action == ApprovalAction.APPROVE else ApprovalStatus.REJECTED
    applied = await repo.resolve_pending(
        db,
        approval_id=approval.id,
        status=status.value,
        reviewer_id=reviewer_id,
        comment=comment,
        reviewed_at=datetime.now(timezone.utc),
    )
    if not applied:
        raise ApprovalNotFoundError()

    row = await transition_session(db, row=row, trigger=trigger)
    await append_message(
        db,
        session_id=row.id,
        role=MessageRole.SYSTEM,
        content=_decision_message(action, comment),
        user_id=reviewer_id,
        phase=MessagePhase.PLANNING,
        metadata={
            "type": "plan_approved" if action == ApprovalAction.APPROVE else "plan_rejected",
            "approvalId": str(approval.id),
        },
    )

    resolved = await repo.get_approval(db, approval_id=approval.id)
    return ApprovalResolvedOut(
        approval=to_approval_out(resolved or approval),
        session_status=row.status,
    )
