from __future__ import annotations

import asyncio
import importlib
import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

builds_api = importlib.import_module("orchestrator.features.builds.api")
planning_api = importlib.import_module("orchestrator.features.planning.api")
pull_requests_api = importlib.import_module("orchestrator.features.pull_requests.api")
from orchestrator.features.agents import AgentStreamEvent
from orchestrator.features.builds.errors import BuildInProgressError
from orchestrator.features.planning.errors import PlannerUnavailableError
from orchestrator.features.pull_requests.errors import NoChangesToCommitError
from orchestrator.features.pull_requests.types import GitBranchListOut, GitBranchOut
from orchestrator.main import app

HEADERS = {"X-User-Id": "user-1", "X-Organization-Id": "org-1"}


class _DummySession:
    pass


@pytest.fixture
def client():
    async def _override_db():
        yield _DummySession()

    app.dependency_overrides[builds_api.get_db_session] = _override_db
    app.dependency_overrides[builds_api.get_build_orchestrator] = lambda: SimpleNamespace()
    app.dependency_overrides[builds_api.get_sandbox_manager] = lambda: SimpleNamespace()
    app.dependency_overrides[planning_api.get_plan_generator] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_build_streams_ndjson_events(monkeypatch, client):
    captured: dict = {}

    async def _events():
        yield AgentStreamEvent(type="start", content="Starting build...")
        yield AgentStreamEvent(type="progress", content="Creating theme context")
        yield AgentStreamEvent(type="done", content="Completed", message_id="m-1", metadata={"status": "ready"})

    async def _fake_start_build(_session, **kwargs):
        captured.update(kwargs)
        return _events()

    monkeypatch.setattr(builds_api, "start_build", _fake_start_build)

    response = client.post("/api/sessions/s-1/build", headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    assert response.headers["cache-control"] == "no-cache"
    frames = [json.loads(line) for line in response.text.splitlines() if line]
    assert [frame["type"] for frame in frames] == ["start", "progress", "done"]
    assert frames[-1]["messageId"] == "m-1"
    assert captured["session_id"] == "s-1"
    assert captured["user_id"] == "user-1"
    assert captured["provider_kind"] is None


def test_build_conflict_is_reported_before_streaming(monkeypatch, client):
    async def _busy(_session, **_kwargs):
        raise BuildInProgressError("s-1")

    monkeypatch.setattr(builds_api, "start_build", _busy)

    response = client.post("/api/sessions/s-1/build", headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "conflict"


def test_chat_passes_content_and_validates_body(monkeypatch, client):
    captured: dict = {}

    async def _events():
        yield AgentStreamEvent(type="done", content="Completed")

    async def _fake_start_chat(_session, **kwargs):
        captured.update(kwargs)
        return _events()

    monkeypatch.setattr(builds_api, "start_chat", _fake_start_chat)

    ok = client.post("/api/sessions/s-1/chat", json={"content": "Make it blue"}, headers=HEADERS)
    assert ok.status_code == 200
    assert captured["content"] == "Make it blue"

    missing = client.post("/api/sessions/s-1/chat", json={}, headers=HEADERS)
    assert missing.status_code == 422


def test_plan_generation_without_planner_is_precondition_failure(monkeypatch, client):
    async def _unavailable(_session, **_kwargs):
        raise PlannerUnavailableError()

    monkeypatch.setattr(planning_api, "generate_plan", _unavailable)

    response = client.post("/api/sessions/s-1/plan", json={"request": "add dark mode"}, headers=HEADERS)

    assert response.status_code == 412
    assert response.json()["detail"]["error"] == "precondition_failed"


def test_pull_request_with_clean_tree_is_precondition_failure(monkeypatch, client):
    async def _clean(_session, **_kwargs):
        raise NoChangesToCommitError()

    monkeypatch.setattr(pull_requests_api, "create_pull_request", _clean)
    app.dependency_overrides[pull_requests_api.get_sandbox_manager] = lambda: SimpleNamespace()

    response = client.post("/api/sessions/s-1/pr", headers=HEADERS)

    assert response.status_code == 412
    assert response.json()["detail"] == {"error": "precondition_failed", "message": "No changes to commit"}


def test_stream_response_closes_events_even_when_never_iterated():
    closed: list[bool] = []

    class _Events:
        def __aiter__(self):
            return self

        async def __anext__(self):
            raise StopAsyncIteration

        async def aclose(self):
            closed.append(True)

    response = builds_api._stream_response(_Events())
    asyncio.run(response.background())

    assert closed == [True]


def test_git_branches_endpoint_forwards_query(monkeypatch, client):
    captured: dict = {}

    async def _branches(_session, **kwargs):
        captured.update(kwargs)
        return GitBranchListOut(branches=[GitBranchOut(name="main", sha="abc123", protected=True)])

    monkeypatch.setattr(pull_requests_api, "list_provider_branches", _branches)

    response = client.get("/api/git/github/branches?owner=acme&repo=storefront", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"branches": [{"name": "main", "sha": "abc123", "protected": True}]}
    assert captured == {"user_id": "user-1", "provider": "github", "owner": "acme", "repo": "storefront"}

    missing = client.get("/api/git/github/branches?owner=acme", headers=HEADERS)
    assert missing.status_code == 422
