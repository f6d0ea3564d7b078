from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from orchestrator.features.checkpoints import repo as checkpoints_repo
from orchestrator.features.checkpoints import service as checkpoints_service
from orchestrator.features.checkpoints.errors import (
    CheckpointNotRestorableError,
    CheckpointValidationError,
)
from orchestrator.features.sandboxes.errors import SandboxCommandError
from orchestrator.features.sessions.errors import SessionNotFoundError

ORG_ID = "org-1"


class _SnapshotProvider:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.snapshots: list[tuple[str, str]] = []
        self.restored: list[tuple[str, str]] = []
        self.prepared: list[str] = []

    async def create_snapshot(self, workspace_id, label):
        if self.fail:
            raise SandboxCommandError("Failed to create snapshot: quota exceeded")
        self.snapshots.append((workspace_id, label))
        return "snap-1"

    async def restore_snapshot(self, workspace_id, snapshot_id):
        self.restored.append((workspace_id, snapshot_id))

    async def prepare_runtime(self, workspace_id):
        self.prepared.append(workspace_id)


class _FakeManager:
    def __init__(self, provider, *, workspace_id="ws-1"):
        self.provider = provider
        self.sandbox = SimpleNamespace(id=uuid4(), workspace_id=workspace_id, last_checkpoint_id=None)
        self.touched: list = []

    async def get_sandbox(self, _db, *, sandbox_id, organization_id=None):
        return self.sandbox

    def provider_for(self, _sandbox):
        return self.provider

    async def touch(self, _db, *, sandbox_id):
        self.touched.append(sandbox_id)


class _CheckpointTable:
    def __init__(self):
        self.rows: list[SimpleNamespace] = []

    async def insert_checkpoint(self, _session, *, sandbox_id, session_id, label, checkpoint_type):
        row = SimpleNamespace(
            id=uuid4(),
            sandbox_id=sandbox_id,
            session_id=session_id,
            label=label,
            type=checkpoint_type,
            provider_snapshot_id=None,
            created_at=datetime.now(timezone.utc),
        )
        self.rows.append(row)
        return row

    async def set_provider_snapshot(self, _session, *, row, provider_snapshot_id):
        row.provider_snapshot_id = provider_snapshot_id
        return row

    async def get_checkpoint(self, _session, *, checkpoint_id, sandbox_id):
        return next(row for row in self.rows if row.id == checkpoint_id and row.sandbox_id == sandbox_id)


@pytest.fixture
def checkpoints(monkeypatch) -> _CheckpointTable:
    table = _CheckpointTable()
    for name in ("insert_checkpoint", "set_provider_snapshot", "get_checkpoint"):
        monkeypatch.setattr(checkpoints_repo, name, getattr(table, name))
    return table


def _record(db, manager, **kwargs):
    kwargs.setdefault("label", "Build: dark mode")
    return asyncio.run(
        checkpoints_service.record_checkpoint(db, sandbox=manager.sandbox, manager=manager, **kwargs)
    )


def test_checkpoint_stores_provider_snapshot(db, checkpoints):
    provider = _SnapshotProvider()
    manager = _FakeManager(provider)

    row = _record(db, manager, label="  Build:   dark mode ", checkpoint_type="automatic")

    assert row.label == "Build: dark mode"
    assert row.type == "automatic"
    assert row.provider_snapshot_id == "snap-1"
    assert provider.snapshots == [("ws-1", "Build: dark mode")]
    assert checkpoints_service.to_checkpoint_out(row).restorable is True


def test_snapshot_failure_still_records_checkpoint(db, checkpoints):
    manager = _FakeManager(_SnapshotProvider(fail=True))

    row = _record(db, manager)

    assert checkpoints.rows == [row]
    assert row.provider_snapshot_id is None
    assert checkpoints_service.to_checkpoint_out(row).restorable is False


def test_checkpoint_requires_label(db, checkpoints):
    manager = _FakeManager(_SnapshotProvider())

    with pytest.raises(CheckpointValidationError):
        _record(db, manager, label="   ")

    assert checkpoints.rows == []


def test_checkpoint_session_must_use_the_sandbox(store, db, checkpoints):
    manager = _FakeManager(_SnapshotProvider())
    row = store.add_session(sandbox_id=uuid4())

    with pytest.raises(SessionNotFoundError, match="does not belong to this sandbox"):
        _record(db, manager, session_id=row.id)

    assert checkpoints.rows == []


def test_checkpoint_links_bound_session(store, db, checkpoints):
    manager = _FakeManager(_SnapshotProvider())
    row = store.add_session(sandbox_id=manager.sandbox.id)

    checkpoint = _record(db, manager, session_id=str(row.id))

    assert checkpoint.session_id == row.id


def test_restore_rebuilds_runtime_and_touches_sandbox(db, checkpoints):
    provider = _SnapshotProvider()
    manager = _FakeManager(provider)
    row = _record(db, manager)

    restored = asyncio.run(
        checkpoints_service.restore_checkpoint(
            db,
            sandbox_id=str(manager.sandbox.id),
            checkpoint_id=str(row.id),
            organization_id=ORG_ID,
            manager=manager,
        )
    )

    assert restored.id == str(row.id)
    assert provider.restored == [("ws-1", "snap-1")]
    assert provider.prepared == ["ws-1"]
    assert manager.touched == [manager.sandbox.id]


def test_restore_requires_provider_snapshot(db, checkpoints):
    provider = _SnapshotProvider(fail=True)
    manager = _FakeManager(provider)
    row = _record(db, manager)

    with pytest.raises(CheckpointNotRestorableError):
        asyncio.run(
            checkpoints_service.restore_checkpoint(
                db,
                sandbox_id=str(manager.sandbox.id),
                checkpoint_id=str(row.id),
                organization_id=ORG_ID,
                manager=manager,
            )
        )

    assert provider.restored == []
