from __future__ import annotations

import asyncio
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from orchestrator.features.sandboxes import repo as sandboxes_repo
from orchestrator.features.sandboxes.errors import (
    SandboxExpiredError,
    SandboxNotReadyError,
    SandboxResumeTimeoutError,
)
from orchestrator.features.sandboxes.providers import SandboxProvider
from orchestrator.features.sandboxes.service import SandboxLifecycleManager
from orchestrator.features.sandboxes.types import (
    CodeOutput,
    CommandResult,
    SandboxKind,
    WorkspaceInfo,
    WorkspaceStatus,
)

ORG_ID = "org-1"
USER_ID = "user-1"


class _FakeProvider(SandboxProvider):
    kind = SandboxKind.DAYTONA
    name = "Fake"

    def __init__(self):
        self.created: list = []
        self.deleted: list[str] = []
        self.resumed: list[str] = []
        self.prepared: list[str] = []
        self.states: dict[str, list[WorkspaceStatus | None]] = {}
        self.ephemeral = False
        self.before_create = None

    def set_states(self, workspace_id: str, *states: WorkspaceStatus | None) -> None:
        self.states[workspace_id] = list(states)

    async def create_workspace(self, options):
        self.created.append(options)
        # Yield so a concurrent caller can reach the repository lock.
        await asyncio.sleep(0)
        if self.before_create is not None:
            await self.before_create()
        return WorkspaceInfo(
            id=f"ws-{len(self.created)}",
            status=WorkspaceStatus.RUNNING,
            preview_url="https://preview.test",
        )

    async def get_workspace(self, workspace_id):
        states = self.states.get(workspace_id, [WorkspaceStatus.RUNNING])
        status = states.pop(0) if len(states) > 1 else states[0]
        if status is None:
            return None
        return WorkspaceInfo(id=workspace_id, status=status, ephemeral=self.ephemeral)

    async def resume_workspace(self, workspace_id):
        self.resumed.append(workspace_id)
        return await self.get_workspace(workspace_id)

    async def pause_workspace(self, workspace_id):
        return None

    async def delete_workspace(self, workspace_id):
        self.deleted.append(workspace_id)

    async def execute_command(self, workspace_id, command, *, cwd=None, env_vars=None, timeout=None):
        return CommandResult(stdout="", stderr="", exit_code=0)

    async def run_code(self, workspace_id, code, *, env_vars=None, timeout=None):
        yield CodeOutput(type="done", content="Execution completed")

    async def prepare_runtime(self, workspace_id):
        self.prepared.append(workspace_id)

    async def get_preview_url(self, workspace_id, port=3000):
        return "https://preview.test"

    async def read_file(self, workspace_id, path):
        return ""

    async def write_file(self, workspace_id, path, content):
        return None

    async def list_files(self, workspace_id, path):
        return []

    async def create_snapshot(self, workspace_id, label):
        return "snap-1"

    async def restore_snapshot(self, workspace_id, snapshot_id):
        return None


class _SandboxTable:
    """One row per repository, like the unique constraint on sandboxes.repository_id."""

    def __init__(self):
        self.rows: dict = {}

    def add(self, *, repository_id, workspace_id="ws-existing", status="running"):
        row = SimpleNamespace(
            id=uuid4(),
            repository_id=repository_id,
            workspace_id=workspace_id,
            provider="daytona",
            status=status,
            preview_url=None,
            last_active_at=None,
            last_checkpoint_id=None,
        )
        self.rows[row.id] = row
        return row

    async def find_sandbox(self, _session, *, sandbox_id):
        return self.rows.get(sandbox_id)

    async def find_sandbox_for_repository(self, _session, *, repository_id):
        return next((row for row in self.rows.values() if row.repository_id == repository_id), None)

    async def insert_sandbox(self, _session, *, repository_id, workspace_id, provider, status, preview_url):
        if await self.find_sandbox_for_repository(_session, repository_id=repository_id) is not None:
            raise IntegrityError("INSERT INTO sandboxes", {}, Exception("duplicate key"))
        row = self.add(repository_id=repository_id, workspace_id=workspace_id, status=status)
        row.preview_url = preview_url
        return row

    async def update_sandbox(self, _session, *, row, **values):
        for key, value in values.items():
            setattr(row, key, value)
        return row

    async def touch_sandbox(self, _session, *, sandbox_id):
        return None


@pytest.fixture
def sandboxes(monkeypatch) -> _SandboxTable:
    table = _SandboxTable()
    for name in ("find_sandbox", "find_sandbox_for_repository", "insert_sandbox", "update_sandbox", "touch_sandbox"):
        monkeypatch.setattr(sandboxes_repo, name, getattr(table, name))
    return table


def _manager(provider: _FakeProvider) -> SandboxLifecycleManager:
    return SandboxLifecycleManager(
        resolve_provider=lambda _kind: provider,
        resume_timeout=0.05,
        poll_interval=0.01,
    )


def _get_or_create(manager, db, row):
    return manager.get_or_create_for_session(
        db,
        session_id=str(row.id),
        organization_id=ORG_ID,
        user_id=USER_ID,
    )


def test_concurrent_sessions_share_one_sandbox_per_repository(store, db, sandboxes):
    repository = store.add_repository()
    first = store.add_session(repository=repository)
    second = store.add_session(repository=repository)
    provider = _FakeProvider()
    manager = _manager(provider)

    async def _both():
        return await asyncio.gather(
            _get_or_create(manager, db, first),
            _get_or_create(manager, db, second),
        )

    results = asyncio.run(_both())

    assert sorted(created for _, created in results) == [False, True]
    assert results[0][0].id == results[1][0].id
    assert len(provider.created) == 1
    assert len(sandboxes.rows) == 1
    assert first.sandbox_id == second.sandbox_id == results[0][0].id


def test_existing_repository_sandbox_is_reused(store, db, sandboxes):
    row = store.add_session()
    existing = sandboxes.add(repository_id=row.repository_id)
    provider = _FakeProvider()

    sandbox, created = asyncio.run(_get_or_create(_manager(provider), db, row))

    assert (sandbox.id, created) == (existing.id, False)
    assert row.sandbox_id == existing.id
    assert provider.created == []


def test_provisioning_passes_repository_and_git_token(store, db, sandboxes):
    store.add_connection(token="ghp_secret")
    row = store.add_session(branch_name="feature/dark-mode")
    provider = _FakeProvider()

    sandbox, created = asyncio.run(_get_or_create(_manager(provider), db, row))

    assert created is True
    assert sandbox.status == "running"
    options = provider.created[0]
    assert options.repo_url == "https://github.com/acme/storefront.git"
    assert options.branch == "feature/dark-mode"
    assert options.git_token == "ghp_secret"


def test_losing_a_cross_process_race_discards_the_orphan_workspace(store, db, sandboxes):
    row = store.add_session()
    provider = _FakeProvider()
    winner: dict = {}

    async def _other_writer_inserts_first():
        winner["row"] = sandboxes.add(repository_id=row.repository_id, workspace_id="ws-winner")

    provider.before_create = _other_writer_inserts_first

    sandbox, created = asyncio.run(_get_or_create(_manager(provider), db, row))

    assert created is False
    assert sandbox.id == winner["row"].id
    assert provider.deleted == ["ws-1"]
    assert row.sandbox_id == winner["row"].id
    assert len(sandboxes.rows) == 1


def test_ensure_running_resumes_paused_workspace(db, sandboxes):
    sandbox = sandboxes.add(repository_id=uuid4(), workspace_id="ws-1", status="paused")
    provider = _FakeProvider()
    provider.set_states("ws-1", WorkspaceStatus.PAUSED, WorkspaceStatus.CREATING, WorkspaceStatus.RUNNING)

    result = asyncio.run(_manager(provider).ensure_running(db, sandbox=sandbox))

    assert provider.resumed == ["ws-1"]
    assert provider.prepared == ["ws-1"]
    assert result.status == "running"
    assert result.last_active_at is not None


def test_ensure_running_leaves_running_workspace_alone(db, sandboxes):
    sandbox = sandboxes.add(repository_id=uuid4(), workspace_id="ws-1", status="running")
    provider = _FakeProvider()

    result = asyncio.run(_manager(provider).ensure_running(db, sandbox=sandbox))

    assert result is sandbox
    assert provider.resumed == []
    assert provider.prepared == []


def test_ensure_running_marks_vanished_workspace_expired(db, sandboxes):
    sandbox = sandboxes.add(repository_id=uuid4(), workspace_id="ws-1", status="paused")
    provider = _FakeProvider()
    provider.set_states("ws-1", None)

    with pytest.raises(SandboxExpiredError) as exc_info:
        asyncio.run(_manager(provider).ensure_running(db, sandbox=sandbox))

    assert exc_info.value.status_code == 412
    assert sandbox.status == "error"


def test_ensure_running_refuses_to_resume_ephemeral_workspace(db, sandboxes):
    sandbox = sandboxes.add(repository_id=uuid4(), workspace_id="ws-1", status="paused")
    provider = _FakeProvider()
    provider.ephemeral = True
    provider.set_states("ws-1", WorkspaceStatus.STOPPED)

    with pytest.raises(SandboxExpiredError):
        asyncio.run(_manager(provider).ensure_running(db, sandbox=sandbox))

    assert provider.resumed == []


def test_ensure_running_times_out_when_workspace_never_starts(db, sandboxes):
    sandbox = sandboxes.add(repository_id=uuid4(), workspace_id="ws-1", status="paused")
    provider = _FakeProvider()
    provider.set_states("ws-1", WorkspaceStatus.PAUSED, WorkspaceStatus.CREATING)

    with pytest.raises(SandboxResumeTimeoutError, match="did not start"):
        asyncio.run(_manager(provider).ensure_running(db, sandbox=sandbox))

    assert provider.prepared == []
    assert sandbox.status == "paused"


def test_ensure_running_requires_workspace(db, sandboxes):
    sandbox = sandboxes.add(repository_id=uuid4(), workspace_id=None, status="provisioning")

    with pytest.raises(SandboxNotReadyError):
        asyncio.run(_manager(_FakeProvider()).ensure_running(db, sandbox=sandbox))
