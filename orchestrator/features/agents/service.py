from __future__ import annotations

import logging
import threading
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import FeatureSession, Sandbox
from orchestrator.features.repositories import load_repository, parse_context
from orchestrator.features.sandboxes import SandboxLifecycleManager
from orchestrator.features.sessions.service import bind_agent_session, load_session
from orchestrator.features.skills import skills_for_request

from .errors import AgentSandboxRequiredError, AgentsDomainError
from .factory import AgentProviderFactory
from .providers import AgentProvider
from .registry import AgentSessionRegistry, RegistryEntry
from .types import AgentProviderKind, AgentSession, AgentSessionOut, CreateAgentSessionOptions

logger = logging.getLogger(__name__)

_registry: AgentSessionRegistry | None = None
_factory: AgentProviderFactory | None = None
_singleton_lock = threading.Lock()


def get_agent_registry() -> AgentSessionRegistry:
    global _registry
    if _registry is None:
        with _singleton_lock:
            if _registry is None:
                _registry = AgentSessionRegistry()
    return _registry


def get_agent_provider_factory() -> AgentProviderFactory:
    global _factory
    if _factory is None:
        registry = get_agent_registry()
        with _singleton_lock:
            if _factory is None:
                _factory = AgentProviderFactory(registry)
    return _factory


def to_agent_session_out(session: AgentSession) -> AgentSessionOut:
    return AgentSessionOut(
        session_id=session.session_id,
        provider=session.provider.value,
        native_id=session.native_id,
        workspace_id=session.workspace_id,
        status=session.status,
        created_at=session.created_at,
    )


async def skill_slugs_for(
    db: AsyncSession,
    *,
    repository_id: UUID,
    message: str | None = None,
) -> tuple[str, ...]:
    repository = await load_repository(db, repository_id=repository_id)
    context = parse_context(repository.context)
    skills = skills_for_request(
        tech_stack=context.tech_stack if context else [],
        message=message,
    )
    return tuple(skill.slug for skill in skills)


async def ensure_agent_session(
    db: AsyncSession,
    *,
    session_row: FeatureSession,
    sandbox: Sandbox,
    factory: AgentProviderFactory,
    provider_kind: AgentProviderKind | str | None = None,
    model: str | None = None,
    system_prompt: str | None = None,
    skills: tuple[str, ...] = (),
) -> tuple[AgentProvider, AgentSession]:
    """Reuse the live backend session for this feature session or create one.

    Creation runs under the per-session registry lock so two concurrent
    requests never open two backend sessions.
    """
    if not sandbox.workspace_id:
        raise AgentSandboxRequiredError()
    provider = factory.get(provider_kind or session_row.agent_provider)
    session_id = str(session_row.id)

    async with factory.registry.lock_for(session_id):
        entry = factory.registry.get(session_id, provider=provider.kind)
        if entry is not None and entry.session.workspace_id == sandbox.workspace_id:
            return provider, entry.session
        agent_session = await provider.create_session(
            CreateAgentSessionOptions(
                session_id=session_id,
                sandbox_id=str(sandbox.id),
                workspace_id=sandbox.workspace_id,
                preview_url=sandbox.preview_url,
                system_prompt=system_prompt,
                model=model,
                skills=skills,
                sandbox_kind=sandbox.provider,
            )
        )

    await bind_agent_session(
        db,
        row=session_row,
        provider=provider.kind.value,
        agent_session_id=agent_session.native_id,
    )
    logger.info(
        "Bound %s agent session %s to session %s",
        provider.kind.value,
        agent_session.native_id,
        session_id,
    )
    return provider, agent_session


def _provider_for_entry(factory: AgentProviderFactory, entry: RegistryEntry) -> AgentProvider | None:
    try:
        return factory.get(entry.session.provider)
    except AgentsDomainError:
        logger.warning("Agent provider %s is no longer enabled", entry.session.provider.value)
        return None


async def get_agent_session(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    factory: AgentProviderFactory,
) -> AgentSession | None:
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    entry = factory.registry.get(str(row.id))
    if entry is None:
        return None
    provider = _provider_for_entry(factory, entry)
    if provider is None:
        return entry.session
    return await provider.get_session(str(row.id), entry.session.workspace_id)


async def create_agent_session(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    factory: AgentProviderFactory,
    manager: SandboxLifecycleManager,
    provider_kind: AgentProviderKind | str | None = None,
    model: str | None = None,
    system_prompt: str | None = None,
) -> AgentSession:
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    if row.sandbox_id is None:
        raise AgentSandboxRequiredError()
    sandbox = await manager.get_sandbox(db, sandbox_id=row.sandbox_id)
    sandbox = await manager.ensure_running(db, sandbox=sandbox)
    _, agent_session = await ensure_agent_session(
        db,
        session_row=row,
        sandbox=sandbox,
        factory=factory,
        provider_kind=provider_kind,
        model=model,
        system_prompt=system_prompt,
        skills=await skill_slugs_for(db, repository_id=row.repository_id),
    )
    return agent_session


async def release_agent_session(session_id: str, *, factory: AgentProviderFactory) -> bool:
    """Delete the live backend session, if any; remote failures are logged, never raised."""
    entry = factory.registry.get(session_id)
    if entry is None:
        return False
    provider = _provider_for_entry(factory, entry)
    if provider is None:
        factory.registry.remove(session_id)
        return True
    await provider.delete_session(session_id, entry.session.workspace_id)
    return True


async def delete_agent_session(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    factory: AgentProviderFactory,
) -> None:
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    await release_agent_session(str(row.id), factory=factory)
    if row.agent_session_id or row.agent_provider:
        await bind_agent_session(db, row=row, provider=None, agent_session_id=None)


async def cancel_agent_operation(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    factory: AgentProviderFactory,
) -> bool:
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    entry = factory.registry.get(str(row.id))
    if entry is None:
        return False
    provider = _provider_for_entry(factory, entry)
    if provider is None:
        factory.registry.remove(str(row.id))
    else:
        await provider.cancel_operation(str(row.id), entry.session.workspace_id)
    if row.agent_session_id:
        await bind_agent_session(db, row=row, provider=None, agent_session_id=None)
    return True


def shutdown_agent_sessions() -> int:
    if _registry is None:
        return 0
    return _registry.release_all()
