from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import GitConnection, Repository
from orchestrator.features.shared.ids import to_uuid

from . import repo
from .errors import GitConnectionMissingError, RepositoryValidationError
from .types import AgentContext, RepositoryContext, RepositoryDetail


def parse_context(raw: dict | None) -> RepositoryContext | None:
    if not raw:
        return None
    return RepositoryContext.model_validate(raw)


def _to_detail(row: Repository) -> RepositoryDetail:
    return RepositoryDetail(
        id=str(row.id),
        organization_id=row.organization_id,
        name=row.name,
        url=row.url,
        provider=row.provider,
        default_branch=row.default_branch,
        context=parse_context(row.context),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


async def create_repository(
    session: AsyncSession,
    *,
    organization_id: str,
    name: str,
    url: str,
    provider: str = "github",
    default_branch: str = "main",
    context: RepositoryContext | None = None,
) -> RepositoryDetail:
    clean_url = url.strip()
    if not clean_url.startswith(("https://", "http://", "git@")):
        raise RepositoryValidationError("url must be an http(s) or ssh git URL.")
    row = await repo.create_repository(
        session,
        organization_id=organization_id,
        name=name.strip(),
        url=clean_url,
        provider=provider.strip().lower(),
        default_branch=default_branch.strip(),
        context=context.model_dump(by_alias=True, exclude_none=True) if context else None,
    )
    return _to_detail(row)


async def list_repositories(session: AsyncSession, *, organization_id: str) -> list[RepositoryDetail]:
    rows = await repo.list_repositories(session, organization_id=organization_id)
    return [_to_detail(row) for row in rows]


async def get_repository(
    session: AsyncSession,
    *,
    repository_id: UUID | str,
    organization_id: str,
) -> RepositoryDetail:
    row = await load_repository(session, repository_id=repository_id, organization_id=organization_id)
    return _to_detail(row)


async def load_repository(
    session: AsyncSession,
    *,
    repository_id: UUID | str,
    organization_id: str | None = None,
) -> Repository:
    return await repo.get_repository(
        session,
        repository_id=to_uuid(repository_id, field_name="repository_id"),
        organization_id=organization_id,
    )


async def find_git_connection(
    session: AsyncSession,
    *,
    user_id: str,
    provider: str,
) -> GitConnection | None:
    return await repo.get_git_connection(session, user_id=user_id, provider=provider)


async def require_git_connection(
    session: AsyncSession,
    *,
    user_id: str,
    provider: str,
) -> GitConnection:
    connection = await find_git_connection(session, user_id=user_id, provider=provider)
    if connection is None:
        raise GitConnectionMissingError(provider)
    return connection


def build_agent_context(repository: Repository, *, branch: str) -> AgentContext:
    context = parse_context(repository.context)
    return AgentContext(
        repo_name=repository.name,
        repo_url=repository.url,
        branch=branch,
        tech_stack=list(context.tech_stack) if context else [],
        existing_files=[item.path for item in context.key_files] if context else [],
    )
