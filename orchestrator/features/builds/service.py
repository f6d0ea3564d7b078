from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import FeatureSession, Sandbox
from orchestrator.features.agents import AgentProviderKind
from orchestrator.features.planning import load_approved_plan
from orchestrator.features.repositories import load_repository, parse_context
from orchestrator.features.sandboxes import SandboxLifecycleManager
from orchestrator.features.sessions.service import load_session, transition_session
from orchestrator.features.sessions.state_machine import SessionTrigger, next_status
from orchestrator.features.skills import Skill, skills_for_request
from orchestrator.features.transcript import MessagePhase, MessageRole, append_message

from .errors import BuildValidationError
from .orchestrator import BuildOrchestrator
from .prompts import build_chat_prompt, build_execution_prompt
from .types import BuildTarget

logger = logging.getLogger(__name__)


async def _skills_for(db: AsyncSession, *, row: FeatureSession, message: str) -> list[Skill]:
    repository = await load_repository(db, repository_id=row.repository_id)
    context = parse_context(repository.context)
    return skills_for_request(
        tech_stack=context.tech_stack if context else [],
        message=message,
    )


async def _running_sandbox(
    db: AsyncSession,
    *,
    row: FeatureSession,
    organization_id: str,
    user_id: str,
    manager: SandboxLifecycleManager,
) -> Sandbox:
    sandbox, created = await manager.get_or_create_for_session(
        db,
        session_id=row.id,
        organization_id=organization_id,
        user_id=user_id,
    )
    if created:
        return sandbox
    return await manager.ensure_running(db, sandbox=sandbox)


async def prepare_build(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    user_id: str,
    manager: SandboxLifecycleManager,
    provider_kind: AgentProviderKind | str | None = None,
) -> BuildTarget:
    """Synchronous half of a build: every check that can fail before the stream opens."""
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    next_status(row.status, SessionTrigger.BUILD_REQUESTED)
    _, plan = await load_approved_plan(db, session_id=row.id)
    sandbox = await _running_sandbox(
        db,
        row=row,
        organization_id=organization_id,
        user_id=user_id,
        manager=manager,
    )
    plan_text = " ".join([plan.summary, *(change.description for change in plan.changes)])
    skills = await _skills_for(db, row=row, message=plan_text)
    row = await transition_session(db, row=row, trigger=SessionTrigger.BUILD_REQUESTED)
    return BuildTarget(
        session_id=row.id,
        sandbox_id=sandbox.id,
        workspace_id=sandbox.workspace_id,
        mode="build",
        prompt=build_execution_prompt(plan, skills=skills, preview_url=sandbox.preview_url),
        preview_url=sandbox.preview_url,
        provider_kind=provider_kind,
        skills=tuple(skill.slug for skill in skills),
        summary=plan.summary,
    )


async def prepare_chat(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    user_id: str,
    content: str,
    manager: SandboxLifecycleManager,
    provider_kind: AgentProviderKind | str | None = None,
) -> BuildTarget:
    text = content.strip()
    if not text:
        raise BuildValidationError("content is required")
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    next_status(row.status, SessionTrigger.CHAT_REQUESTED)
    sandbox = await _running_sandbox(
        db,
        row=row,
        organization_id=organization_id,
        user_id=user_id,
        manager=manager,
    )
    skills = await _skills_for(db, row=row, message=text)
    await append_message(
        db,
        session_id=row.id,
        role=MessageRole.USER,
        content=text,
        user_id=user_id,
        phase=MessagePhase.BUILDING,
    )
    row = await transition_session(db, row=row, trigger=SessionTrigger.CHAT_REQUESTED)
    return BuildTarget(
        session_id=row.id,
        sandbox_id=sandbox.id,
        workspace_id=sandbox.workspace_id,
        mode="chat",
        prompt=build_chat_prompt(text, skills=skills, preview_url=sandbox.preview_url),
        preview_url=sandbox.preview_url,
        provider_kind=provider_kind,
        skills=tuple(skill.slug for skill in skills),
    )


async def start_build(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    user_id: str,
    orchestrator: BuildOrchestrator,
    manager: SandboxLifecycleManager,
    provider_kind: AgentProviderKind | str | None = None,
):
    """Claim the session's stream slot, prepare, and hand back the event stream."""
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    orchestrator.claim(row.id)
    try:
        target = await prepare_build(
            db,
            session_id=row.id,
            organization_id=organization_id,
            user_id=user_id,
            manager=manager,
            provider_kind=provider_kind,
        )
    except BaseException:
        orchestrator.release(row.id)
        raise
    logger.info("Starting build for session %s on workspace %s", target.session_id, target.workspace_id)
    return orchestrator.execute_plan(target)


async def start_chat(
    db: AsyncSession,
    *,
    session_id: str | UUID,
    organization_id: str,
    user_id: str,
    content: str,
    orchestrator: BuildOrchestrator,
    manager: SandboxLifecycleManager,
    provider_kind: AgentProviderKind | str | None = None,
):
    row = await load_session(db, session_id=session_id, organization_id=organization_id)
    orchestrator.claim(row.id)
    try:
        target = await prepare_chat(
            db,
            session_id=row.id,
            organization_id=organization_id,
            user_id=user_id,
            content=content,
            manager=manager,
            provider_kind=provider_kind,
        )
    except BaseException:
        orchestrator.release(row.id)
        raise
    logger.info("Starting chat turn for session %s", target.session_id)
    return orchestrator.execute_chat(target)
