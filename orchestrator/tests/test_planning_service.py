from __future__ import annotations

import asyncio
import json

import pytest

from orchestrator.features.planning import service as planning_service
from orchestrator.features.planning.errors import (
    ApprovalConflictError,
    ApprovalNotFoundError,
    PlanGenerationError,
    PlanNotApprovedError,
    PlanValidationError,
)
from orchestrator.features.planning.types import PlanChange, PlanResult
from orchestrator.features.sessions.errors import SessionPreconditionError

ORG_ID = "org-1"
USER_ID = "user-1"


def _planner(captured: dict | None = None):
    async def _generate(request, context):
        if captured is not None:
            captured["request"] = request
            captured["context"] = context
        return PlanResult(
            summary="Add a dark mode toggle",
            changes=[PlanChange(description="Add a theme switch to the header", files=["src/Header.tsx"])],
            considerations=["Persist the preference"],
        )

    return _generate


def _generate(db, row, planner=None, request="add dark mode"):
    return asyncio.run(
        planning_service.generate_plan(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            user_id=USER_ID,
            request=request,
            planner=planner or _planner(),
        )
    )


def _resolve(db, row, action="approve", comment=None):
    return asyncio.run(
        planning_service.resolve_approval(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            reviewer_id=USER_ID,
            action=action,
            comment=comment,
        )
    )


def test_generate_plan_creates_plan_message_and_pending_approval(store, db):
    row = store.add_session(status="idle")
    captured: dict = {}

    result = _generate(db, row, planner=_planner(captured))

    assert result.status == "plan_review"
    assert store.sessions[row.id].status == "plan_review"
    assert captured["request"] == "add dark mode"
    assert captured["context"].tech_stack == ["react", "typescript"]

    messages = store.messages_for(row.id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[0].phase == "planning"
    assert messages[1].meta == {"type": "plan"}
    assert json.loads(messages[1].content)["summary"] == "Add a dark mode toggle"

    approvals = store.approvals_for(row.id)
    assert len(approvals) == 1
    assert approvals[0].status == "pending"
    assert str(approvals[0].message_id) == result.message_id


def test_generate_plan_rejects_blank_request(store, db):
    row = store.add_session(status="idle")

    with pytest.raises(PlanValidationError):
        _generate(db, row, request="   ")

    assert store.messages == []


def test_generate_plan_requires_plannable_status(store, db):
    row = store.add_session(status="building")

    with pytest.raises(SessionPreconditionError):
        _generate(db, row)

    assert store.messages == []
    assert store.sessions[row.id].status == "building"


def test_generate_plan_failure_rolls_back_to_idle(store, db):
    row = store.add_session(status="idle")

    async def _broken(_request, _context):
        raise RuntimeError("model overloaded")

    with pytest.raises(PlanGenerationError, match="model overloaded"):
        _generate(db, row, planner=_broken)

    assert store.sessions[row.id].status == "idle"
    assert store.approvals == {}
    assert [m.role for m in store.messages_for(row.id)] == ["user"]


def _seed_plan(db, store, row):
    message = asyncio.run(
        store.insert_message(
            db,
            session_id=row.id,
            role="assistant",
            content='{"summary": "Old plan"}',
            user_id=None,
            phase="planning",
            metadata={"type": "plan"},
        )
    )
    return asyncio.run(store.insert_approval(db, session_id=row.id, message_id=message.id))


def test_regenerating_plan_supersedes_previous_pending_approval(store, db):
    row = store.add_session(status="idle")
    stale = _seed_plan(db, store, row)

    generated = _generate(db, row)

    statuses = {str(a.id): a.status for a in store.approvals_for(row.id)}
    assert statuses[str(stale.id)] == "superseded"
    assert statuses[generated.approval_id] == "pending"


def test_approve_moves_session_to_building_and_records_system_message(store, db):
    row = store.add_session(status="idle")
    generated = _generate(db, row)

    resolved = _resolve(db, row)

    assert resolved.session_status == "building"
    assert resolved.approval.status == "approved"
    assert resolved.approval.reviewer_id == USER_ID
    system = store.messages_for(row.id)[-1]
    assert system.role == "system"
    assert system.content == "Plan approved. Starting build..."
    assert system.meta == {"type": "plan_approved", "approvalId": generated.approval_id}


def test_reject_with_comment_returns_session_to_idle(store, db):
    row = store.add_session(status="idle")
    _generate(db, row)

    resolved = _resolve(db, row, action="reject", comment="  Too broad  ")

    assert resolved.session_status == "idle"
    assert resolved.approval.comment == "Too broad"
    assert store.messages_for(row.id)[-1].content == 'Plan rejected: "Too broad"'


def test_second_resolution_finds_no_pending_approval(store, db):
    row = store.add_session(status="idle")
    _generate(db, row)
    _resolve(db, row)

    with pytest.raises(ApprovalNotFoundError):
        _resolve(db, row)

    approvals = store.approvals_for(row.id)
    assert [a.status for a in approvals] == ["approved"]
    assert store.sessions[row.id].status == "building"


def test_resolution_requires_exactly_one_pending_approval(store, db):
    row = store.add_session(status="plan_review")
    _seed_plan(db, store, row)
    _seed_plan(db, store, row)

    with pytest.raises(ApprovalConflictError):
        _resolve(db, row)

    assert all(a.status == "pending" for a in store.approvals_for(row.id))


def test_invalid_action_is_rejected(store, db):
    row = store.add_session(status="plan_review")

    with pytest.raises(PlanValidationError):
        _resolve(db, row, action="maybe")


def test_latest_plan_includes_approval_state(store, db):
    row = store.add_session(status="idle")
    generated = _generate(db, row)

    latest = asyncio.run(
        planning_service.get_latest_plan(db, session_id=row.id, organization_id=ORG_ID)
    )

    assert latest.message_id == generated.message_id
    assert latest.plan.summary == "Add a dark mode toggle"
    assert latest.approval.status == "pending"


def test_load_approved_plan_requires_approval(store, db):
    row = store.add_session(status="idle")
    _generate(db, row)

    with pytest.raises(PlanNotApprovedError):
        asyncio.run(planning_service.load_approved_plan(db, session_id=row.id))

    _resolve(db, row)
    _, plan = asyncio.run(planning_service.load_approved_plan(db, session_id=row.id))
    assert plan.changes[0].files == ["src/Header.tsx"]
