from __future__ import annotations

import asyncio
from types import SimpleNamespace
from uuid import uuid4

import pytest

from orchestrator.core.config import Settings
from orchestrator.features.agents import service as agents_service
from orchestrator.features.agents.errors import (
    AgentProviderDisabledError,
    AgentSandboxRequiredError,
    UnknownAgentProviderError,
)
from orchestrator.features.agents.factory import AgentProviderFactory
from orchestrator.features.agents.providers import AgentProvider
from orchestrator.features.agents.registry import AgentSessionRegistry
from orchestrator.features.agents.types import AgentProviderKind, AgentSession, AgentStreamEvent

ORG_ID = "org-1"


class _CountingProvider(AgentProvider):
    kind = AgentProviderKind.OPENCODE
    name = "Counting"

    def __init__(self, registry):
        super().__init__(registry)
        self.created: list[str] = []
        self.sandbox_kinds: list[str | None] = []
        self.remote_cancels: list[str] = []
        self.remote_deletes: list[str] = []

    async def create_session(self, options):
        self.created.append(options.session_id)
        self.sandbox_kinds.append(options.sandbox_kind)
        # Yield so a concurrent caller can reach the registry lock.
        await asyncio.sleep(0)
        session = AgentSession(
            session_id=options.session_id,
            native_id=f"native-{len(self.created)}",
            provider=self.kind,
            workspace_id=options.workspace_id,
        )
        self.registry.insert(session)
        return session

    async def get_session(self, session_id, workspace_id):
        entry = self.registry.get(session_id)
        return entry.session if entry else None

    def transform_event(self, native):
        return native

    async def _stream(self, entry, options):
        yield AgentStreamEvent(type="done")

    async def _cancel_remote(self, entry):
        self.remote_cancels.append(entry.session.session_id)

    async def _delete_remote(self, entry):
        self.remote_deletes.append(entry.session.session_id)


def _factory(*, disabled=()):
    registry = AgentSessionRegistry()
    provider = _CountingProvider(registry)
    factory = AgentProviderFactory(
        registry,
        settings=Settings(),
        builders={AgentProviderKind.OPENCODE: lambda _registry, _settings: provider},
        disabled=disabled,
        default="opencode",
    )
    return factory, provider


def _sandbox(workspace_id="ws-1"):
    return SimpleNamespace(id=uuid4(), workspace_id=workspace_id, preview_url=None, provider="daytona")


def _ensure(db, row, sandbox, factory):
    return agents_service.ensure_agent_session(db, session_row=row, sandbox=sandbox, factory=factory)


def test_factory_resolves_known_enabled_providers():
    factory, provider = _factory()

    assert factory.get() is provider
    assert factory.get("OpenCode") is provider
    assert factory.is_enabled("opencode")
    with pytest.raises(UnknownAgentProviderError):
        factory.get("cursor")
    with pytest.raises(UnknownAgentProviderError):
        factory.get(AgentProviderKind.CLAUDE_AGENT_SDK)


def test_disabled_provider_is_refused():
    factory, _ = _factory(disabled=["opencode"])

    with pytest.raises(AgentProviderDisabledError) as exc_info:
        factory.get("opencode")

    assert exc_info.value.status_code == 412
    assert factory.available() == []


def test_concurrent_ensure_opens_one_backend_session(store, db):
    factory, provider = _factory()
    row = store.add_session()
    sandbox = _sandbox()

    async def _both():
        return await asyncio.gather(_ensure(db, row, sandbox, factory), _ensure(db, row, sandbox, factory))

    results = asyncio.run(_both())

    assert provider.created == [str(row.id)]
    assert results[0][1] is results[1][1]
    assert provider.sandbox_kinds == ["daytona"]
    assert row.agent_provider == "opencode"
    assert row.agent_session_id == "native-1"


def test_ensure_recreates_session_for_new_workspace(store, db):
    factory, provider = _factory()
    row = store.add_session()

    asyncio.run(_ensure(db, row, _sandbox("ws-1"), factory))
    _, session = asyncio.run(_ensure(db, row, _sandbox("ws-2"), factory))

    assert len(provider.created) == 2
    assert session.workspace_id == "ws-2"


def test_ensure_requires_workspace(store, db):
    factory, _ = _factory()
    row = store.add_session()

    with pytest.raises(AgentSandboxRequiredError):
        asyncio.run(_ensure(db, row, _sandbox(workspace_id=None), factory))


def test_cancel_clears_binding_and_signals_stream(store, db):
    factory, provider = _factory()
    row = store.add_session()
    asyncio.run(_ensure(db, row, _sandbox(), factory))
    entry = factory.registry.get(str(row.id))

    cancelled = asyncio.run(
        agents_service.cancel_agent_operation(db, session_id=str(row.id), organization_id=ORG_ID, factory=factory)
    )

    assert cancelled is True
    assert entry.cancelled
    assert provider.remote_cancels == [str(row.id)]
    assert str(row.id) not in factory.registry
    assert (row.agent_provider, row.agent_session_id) == (None, None)

    again = asyncio.run(
        agents_service.cancel_agent_operation(db, session_id=str(row.id), organization_id=ORG_ID, factory=factory)
    )
    assert again is False


def test_delete_releases_backend_session(store, db):
    factory, provider = _factory()
    row = store.add_session()
    asyncio.run(_ensure(db, row, _sandbox(), factory))

    asyncio.run(
        agents_service.delete_agent_session(db, session_id=str(row.id), organization_id=ORG_ID, factory=factory)
    )

    assert provider.remote_deletes == [str(row.id)]
    assert len(factory.registry) == 0
    assert row.agent_session_id is None


def test_get_agent_session_is_none_without_live_session(store, db):
    factory, _ = _factory()
    row = store.add_session()

    result = asyncio.run(
        agents_service.get_agent_session(db, session_id=str(row.id), organization_id=ORG_ID, factory=factory)
    )

    assert result is None
