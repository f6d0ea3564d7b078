from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from orchestrator.features.planning import repo as planning_repo
from orchestrator.features.repositories import repo as repositories_repo
from orchestrator.features.repositories.errors import RepositoryNotFoundError
from orchestrator.features.sessions import repo as sessions_repo
from orchestrator.features.sessions.errors import SessionNotFoundError
from orchestrator.features.transcript import repo as transcript_repo

ORG_ID = "org-1"
USER_ID = "user-1"

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class _DummySession:
    """Stands in for AsyncSession; the store below replaces every repo call."""

    async def commit(self):
        return None

    async def rollback(self):
        return None

    async def refresh(self, _row):
        return None


class InMemoryStore:
    def __init__(self):
        self.repositories: dict[UUID, SimpleNamespace] = {}
        self.connections: dict[tuple[str, str], SimpleNamespace] = {}
        self.sessions: dict[UUID, SimpleNamespace] = {}
        self.messages: list[SimpleNamespace] = []
        self.approvals: dict[UUID, SimpleNamespace] = {}
        self._clock = itertools.count(1)

    def _now(self) -> datetime:
        return _BASE_TIME + timedelta(seconds=next(self._clock))

    def add_repository(self, **overrides) -> SimpleNamespace:
        row = SimpleNamespace(
            id=uuid4(),
            organization_id=ORG_ID,
            name="storefront",
            url="https://github.com/acme/storefront.git",
            provider="github",
            default_branch="main",
            context={"tech_stack": ["react", "typescript"], "key_files": []},
            created_at=self._now(),
        )
        for key, value in overrides.items():
            setattr(row, key, value)
        self.repositories[row.id] = row
        return row

    def add_connection(self, *, user_id: str = USER_ID, provider: str = "github", token: str = "ghp_secret"):
        row = SimpleNamespace(id=uuid4(), user_id=user_id, provider=provider, access_token=token)
        self.connections[(user_id, provider)] = row
        return row

    def add_session(self, *, status: str = "idle", repository=None, **overrides) -> SimpleNamespace:
        repository = repository or self.add_repository()
        now = self._now()
        row = SimpleNamespace(
            id=uuid4(),
            organization_id=ORG_ID,
            repository_id=repository.id,
            name="Dark mode",
            branch_name="main",
            status=status,
            sandbox_id=None,
            agent_provider=None,
            agent_session_id=None,
            created_by_id=USER_ID,
            created_at=now,
            updated_at=now,
        )
        for key, value in overrides.items():
            setattr(row, key, value)
        self.sessions[row.id] = row
        return row

    def messages_for(self, session_id: UUID) -> list[SimpleNamespace]:
        return [row for row in self.messages if row.session_id == session_id]

    def approvals_for(self, session_id: UUID) -> list[SimpleNamespace]:
        return [row for row in self.approvals.values() if row.session_id == session_id]

    # sessions repo

    async def get_session(self, _session, *, session_id, organization_id=None):
        row = self.sessions.get(session_id)
        if row is None or (organization_id is not None and row.organization_id != organization_id):
            raise SessionNotFoundError("Session not found")
        return row

    async def compare_and_set_status(self, _session, *, session_id, expected, target):
        row = self.sessions.get(session_id)
        if row is None or row.status != expected:
            return False
        row.status = target
        return True

    async def read_status(self, _session, *, session_id):
        row = self.sessions.get(session_id)
        return row.status if row else None

    async def update_session(self, _session, *, row, **values):
        for key, value in values.items():
            setattr(row, key, value)
        return row

    # transcript repo

    async def insert_message(self, _session, *, session_id, role, content, user_id, phase, metadata):
        row = SimpleNamespace(
            id=uuid4(),
            session_id=session_id,
            user_id=user_id,
            role=role,
            content=content,
            phase=phase,
            meta=metadata,
            created_at=self._now(),
        )
        self.messages.append(row)
        return row

    async def list_messages(self, _session, *, session_id, limit=None):
        rows = self.messages_for(session_id)
        return rows[:limit] if limit is not None else rows

    async def list_messages_newest_first(self, _session, *, session_id, role=None):
        rows = [row for row in self.messages_for(session_id) if role is None or row.role == role]
        return list(reversed(rows))

    async def get_message(self, _session, *, message_id):
        return next((row for row in self.messages if row.id == message_id), None)

    # planning repo

    async def insert_approval(self, _session, *, session_id, message_id):
        row = SimpleNamespace(
            id=uuid4(),
            session_id=session_id,
            message_id=message_id,
            status="pending",
            reviewer_id=None,
            comment=None,
            created_at=self._now(),
            reviewed_at=None,
        )
        self.approvals[row.id] = row
        return row

    async def supersede_pending(self, _session, *, session_id):
        count = 0
        for row in self.approvals_for(session_id):
            if row.status == "pending":
                row.status = "superseded"
                count += 1
        return count

    async def list_pending(self, _session, *, session_id):
        return [row for row in self.approvals_for(session_id) if row.status == "pending"]

    async def resolve_pending(self, _session, *, approval_id, status, reviewer_id, comment, reviewed_at):
        row = self.approvals.get(approval_id)
        if row is None or row.status != "pending":
            return False
        row.status = status
        row.reviewer_id = reviewer_id
        row.comment = comment
        row.reviewed_at = reviewed_at
        return True

    async def get_approval(self, _session, *, approval_id):
        return self.approvals.get(approval_id)

    async def find_approval_for_message(self, _session, *, message_id):
        rows = [row for row in self.approvals.values() if row.message_id == message_id]
        return rows[-1] if rows else None

    # repositories repo

    async def get_repository(self, _session, *, repository_id, organization_id=None):
        row = self.repositories.get(repository_id)
        if row is None or (organization_id is not None and row.organization_id != organization_id):
            raise RepositoryNotFoundError("Repository not found")
        return row

    async def get_git_connection(self, _session, *, user_id, provider):
        return self.connections.get((user_id, provider))


@pytest.fixture
def db():
    return _DummySession()


@pytest.fixture
def store(monkeypatch) -> InMemoryStore:
    memory = InMemoryStore()
    for name in ("get_session", "compare_and_set_status", "read_status", "update_session"):
        monkeypatch.setattr(sessions_repo, name, getattr(memory, name))
    for name in ("insert_message", "list_messages", "list_messages_newest_first", "get_message"):
        monkeypatch.setattr(transcript_repo, name, getattr(memory, name))
    for name in (
        "insert_approval",
        "supersede_pending",
        "list_pending",
        "resolve_pending",
        "get_approval",
        "find_approval_for_message",
    ):
        monkeypatch.setattr(planning_repo, name, getattr(memory, name))
    for name in ("get_repository", "get_git_connection"):
        monkeypatch.setattr(repositories_repo, name, getattr(memory, name))
    return memory
