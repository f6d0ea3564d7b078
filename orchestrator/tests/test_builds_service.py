from __future__ import annotations

import asyncio
from types import SimpleNamespace
from uuid import uuid4

import pytest

from orchestrator.features.builds import service as builds_service
from orchestrator.features.builds.errors import BuildInProgressError, BuildValidationError
from orchestrator.features.builds.orchestrator import BuildOrchestrator
from orchestrator.features.planning import service as planning_service
from orchestrator.features.planning.errors import PlanNotApprovedError
from orchestrator.features.planning.types import PlanChange, PlanResult
from orchestrator.features.sessions.errors import SessionPreconditionError

ORG_ID = "org-1"
USER_ID = "user-1"


class _FakeManager:
    def __init__(self, *, created: bool = False):
        self.sandbox = SimpleNamespace(id=uuid4(), workspace_id="ws-1", preview_url="https://preview.test")
        self.created = created
        self.requested: list = []
        self.ensured = 0

    async def get_or_create_for_session(self, _db, *, session_id, organization_id, user_id, provider=None):
        self.requested.append(session_id)
        return self.sandbox, self.created

    async def ensure_running(self, _db, *, sandbox):
        self.ensured += 1
        return sandbox


def _orchestrator(manager) -> BuildOrchestrator:
    return BuildOrchestrator(
        session_factory=lambda: None,
        factory=SimpleNamespace(),
        manager=manager,
        stream_timeout=1.0,
    )


def _approve_plan(db, row):
    async def _planner(_request, _context):
        return PlanResult(
            summary="Add a dark mode toggle",
            changes=[PlanChange(description="Add a theme switch component to the header", files=["src/Header.tsx"])],
        )

    async def _flow():
        await planning_service.generate_plan(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            user_id=USER_ID,
            request="add dark mode",
            planner=_planner,
        )
        await planning_service.resolve_approval(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            reviewer_id=USER_ID,
            action="approve",
        )

    asyncio.run(_flow())


def test_prepare_build_uses_approved_plan_and_running_sandbox(store, db):
    row = store.add_session(status="idle")
    _approve_plan(db, row)
    manager = _FakeManager()

    target = asyncio.run(
        builds_service.prepare_build(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            user_id=USER_ID,
            manager=manager,
        )
    )

    assert target.mode == "build"
    assert target.session_id == row.id
    assert target.workspace_id == "ws-1"
    assert target.summary == "Add a dark mode toggle"
    assert "Add a theme switch component to the header" in target.prompt
    assert "https://preview.test" in target.prompt
    assert "react" in target.skills
    assert manager.ensured == 1
    assert store.sessions[row.id].status == "building"


def test_prepare_build_requires_approved_plan(store, db):
    row = store.add_session(status="building")

    with pytest.raises(PlanNotApprovedError):
        asyncio.run(
            builds_service.prepare_build(
                db,
                session_id=str(row.id),
                organization_id=ORG_ID,
                user_id=USER_ID,
                manager=_FakeManager(),
            )
        )


def test_prepare_chat_records_user_turn_and_starts_building(store, db):
    row = store.add_session(status="idle")
    manager = _FakeManager(created=True)

    target = asyncio.run(
        builds_service.prepare_chat(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            user_id=USER_ID,
            content="  Make the header sticky  ",
            manager=manager,
        )
    )

    assert target.mode == "chat"
    assert target.prompt.startswith("Make the header sticky")
    assert manager.ensured == 0
    assert store.sessions[row.id].status == "building"
    message = store.messages_for(row.id)[-1]
    assert (message.role, message.content, message.phase) == ("user", "Make the header sticky", "building")


def test_prepare_chat_rejects_blank_content(store, db):
    row = store.add_session(status="idle")

    with pytest.raises(BuildValidationError):
        asyncio.run(
            builds_service.prepare_chat(
                db,
                session_id=str(row.id),
                organization_id=ORG_ID,
                user_id=USER_ID,
                content="   ",
                manager=_FakeManager(),
            )
        )

    assert store.messages == []


def test_prepare_chat_refuses_while_plan_is_in_review(store, db):
    row = store.add_session(status="plan_review")
    manager = _FakeManager()

    with pytest.raises(SessionPreconditionError):
        asyncio.run(
            builds_service.prepare_chat(
                db,
                session_id=str(row.id),
                organization_id=ORG_ID,
                user_id=USER_ID,
                content="hello",
                manager=manager,
            )
        )

    assert manager.requested == []


def test_failed_preparation_releases_stream_slot(store, db):
    row = store.add_session(status="building")
    manager = _FakeManager()
    orchestrator = _orchestrator(manager)

    with pytest.raises(PlanNotApprovedError):
        asyncio.run(
            builds_service.start_build(
                db,
                session_id=str(row.id),
                organization_id=ORG_ID,
                user_id=USER_ID,
                orchestrator=orchestrator,
                manager=manager,
            )
        )

    assert not orchestrator.is_streaming(row.id)


def test_start_chat_holds_slot_until_stream_runs(store, db):
    row = store.add_session(status="idle")
    manager = _FakeManager()
    orchestrator = _orchestrator(manager)

    stream = asyncio.run(
        builds_service.start_chat(
            db,
            session_id=str(row.id),
            organization_id=ORG_ID,
            user_id=USER_ID,
            content="Rename the button",
            orchestrator=orchestrator,
            manager=manager,
        )
    )

    assert stream is not None
    assert orchestrator.is_streaming(row.id)
    with pytest.raises(BuildInProgressError):
        asyncio.run(
            builds_service.start_chat(
                db,
                session_id=str(row.id),
                organization_id=ORG_ID,
                user_id=USER_ID,
                content="Another turn",
                orchestrator=orchestrator,
                manager=manager,
            )
        )
    assert [m.content for m in store.messages_for(row.id)] == ["Rename the button"]
