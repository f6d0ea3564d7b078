from __future__ import annotations

import asyncio
import itertools

import pytest

from orchestrator.features.sessions import service as sessions_service
from orchestrator.features.sessions.errors import SessionPreconditionError
from orchestrator.features.sessions.state_machine import (
    TRANSITIONS,
    SessionStatus,
    SessionTrigger,
    allowed_sources,
    next_status,
)


@pytest.mark.parametrize(
    ("status", "trigger"),
    list(itertools.product(SessionStatus, SessionTrigger)),
)
def test_transition_is_accepted_only_from_listed_sources(status, trigger):
    expected = TRANSITIONS.get((status, trigger))
    if expected is None:
        with pytest.raises(SessionPreconditionError) as exc_info:
            next_status(status, trigger)
        assert exc_info.value.status_code == 412
        assert exc_info.value.current == status.value
        assert status.value not in exc_info.value.required
    else:
        assert next_status(status.value, trigger.value) is expected
        assert status.value in allowed_sources(trigger)


def test_unknown_status_is_rejected_instead_of_coerced():
    with pytest.raises(SessionPreconditionError):
        next_status("archived", SessionTrigger.PLAN_REQUESTED)


def test_precondition_message_names_required_and_current_status():
    with pytest.raises(SessionPreconditionError) as exc_info:
        next_status(SessionStatus.IDLE, SessionTrigger.PULL_REQUEST_OPENED)
    assert str(exc_info.value) == "Session is not in ready status (current: idle)"


def test_main_lifecycle_path():
    status = SessionStatus.IDLE
    for trigger in (
        SessionTrigger.PLAN_REQUESTED,
        SessionTrigger.PLAN_GENERATED,
        SessionTrigger.APPROVED,
        SessionTrigger.BUILD_REQUESTED,
        SessionTrigger.BUILD_COMPLETED,
        SessionTrigger.PULL_REQUEST_OPENED,
    ):
        status = next_status(status, trigger)
    assert status is SessionStatus.REVIEWING


def test_transition_session_writes_target_status(store, db):
    row = store.add_session(status="idle")

    updated = asyncio.run(
        sessions_service.transition_session(db, row=row, trigger=SessionTrigger.PLAN_REQUESTED)
    )

    assert updated.status == "planning"
    assert store.sessions[row.id].status == "planning"


def test_transition_session_loses_race_without_changing_status(store, db, monkeypatch):
    row = store.add_session(status="plan_review")
    stale = type(row)(**vars(row))

    async def _concurrent_writer(_session, *, session_id, expected, target):
        store.sessions[session_id].status = "idle"
        return False

    monkeypatch.setattr(sessions_service.repo, "compare_and_set_status", _concurrent_writer)

    with pytest.raises(SessionPreconditionError) as exc_info:
        asyncio.run(sessions_service.transition_session(db, row=stale, trigger=SessionTrigger.APPROVED))

    assert exc_info.value.current == "idle"
    assert store.sessions[row.id].status == "idle"
    assert stale.status == "plan_review"


def test_retry_moves_error_session_back_to_idle(store, db):
    row = store.add_session(status="error")

    summary = asyncio.run(
        sessions_service.retry_session(db, session_id=str(row.id), organization_id="org-1")
    )

    assert summary.status == "idle"


def test_retry_rejects_non_error_session(store, db):
    row = store.add_session(status="building")

    with pytest.raises(SessionPreconditionError):
        asyncio.run(sessions_service.retry_session(db, session_id=row.id, organization_id="org-1"))

    assert store.sessions[row.id].status == "building"
