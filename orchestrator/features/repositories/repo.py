from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import GitConnection, Repository

from .errors import RepositoryNotFoundError


async def create_repository(
    session: AsyncSession,
    *,
    organization_id: str,
    name: str,
    url: str,
    provider: str,
    default_branch: str,
    context: dict | None,
) -> Repository:
    row = Repository(
        organization_id=organization_id,
        name=name,
        url=url,
        provider=provider,
        default_branch=default_branch,
        context=context,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def list_repositories(session: AsyncSession, *, organization_id: str) -> list[Repository]:
    stmt = (
        select(Repository)
        .where(Repository.organization_id == organization_id)
        .order_by(Repository.created_at.desc(), Repository.id.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_repository(
    session: AsyncSession,
    *,
    repository_id: UUID,
    organization_id: str | None = None,
) -> Repository:
    stmt = select(Repository).where(Repository.id == repository_id)
    if organization_id is not None:
        stmt = stmt.where(Repository.organization_id == organization_id)
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        raise RepositoryNotFoundError("Repository not found")
    return row


async def get_git_connection(
    session: AsyncSession,
    *,
    user_id: str,
    provider: str,
) -> GitConnection | None:
    stmt = select(GitConnection).where(
        GitConnection.user_id == user_id,
        GitConnection.provider == provider,
    )
    return (await session.execute(stmt)).scalar_one_or_none()
