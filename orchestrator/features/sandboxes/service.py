from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.core.config import get_settings
from orchestrator.db.models import Sandbox
from orchestrator.features.repositories import find_git_connection, load_repository
from orchestrator.features.sessions.service import (
    bind_sandbox,
    load_session,
    unbind_sandbox_everywhere,
)
from orchestrator.features.shared.ids import to_uuid

from . import repo
from .errors import (
    SandboxCommandError,
    SandboxExpiredError,
    SandboxNotReadyError,
    SandboxProviderUnavailableError,
    SandboxResumeError,
    SandboxResumeTimeoutError,
)
from .providers import SandboxProvider, get_sandbox_provider
from .types import (
    CreateWorkspaceOptions,
    SandboxKind,
    SandboxOut,
    SandboxStatus,
    WorkspaceInfo,
    WorkspaceStatus,
)

logger = logging.getLogger(__name__)

ProviderResolver = Callable[[SandboxKind | str | None], SandboxProvider]

_RESUMABLE = {WorkspaceStatus.PAUSED, WorkspaceStatus.STOPPED}


def to_sandbox_out(row: Sandbox) -> SandboxOut:
    return SandboxOut(
        id=str(row.id),
        repository_id=str(row.repository_id),
        workspace_id=row.workspace_id,
        provider=row.provider,
        status=row.status,
        preview_url=row.preview_url,
        last_active_at=row.last_active_at,
        last_checkpoint_id=str(row.last_checkpoint_id) if row.last_checkpoint_id else None,
        created_at=row.created_at,
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SandboxLifecycleManager:
    """Owns the one-sandbox-per-repository invariant and the sandbox's run state.

    Remote provider calls always happen before the matching local write, so
    the database never claims a state the workspace has not reached.
    """

    def __init__(
        self,
        *,
        resolve_provider: ProviderResolver = get_sandbox_provider,
        resume_timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> None:
        settings = get_settings()
        self._resolve_provider = resolve_provider
        self._resume_timeout = (
            resume_timeout if resume_timeout is not None else settings.sandbox_resume_timeout_seconds
        )
        self._poll_interval = (
            poll_interval
            if poll_interval is not None
            else settings.sandbox_resume_poll_interval_seconds
        )
        self._repository_locks: dict[UUID, asyncio.Lock] = {}

    def provider_for(self, sandbox: Sandbox) -> SandboxProvider:
        return self._resolve_provider(sandbox.provider)

    def _lock_for(self, repository_id: UUID) -> asyncio.Lock:
        return self._repository_locks.setdefault(repository_id, asyncio.Lock())

    async def get_sandbox(
        self,
        db: AsyncSession,
        *,
        sandbox_id: UUID | str,
        organization_id: str | None = None,
    ) -> Sandbox:
        return await repo.get_sandbox(
            db,
            sandbox_id=to_uuid(sandbox_id, field_name="sandbox_id"),
            organization_id=organization_id,
        )

    async def get_or_create_for_session(
        self,
        db: AsyncSession,
        *,
        session_id: UUID | str,
        organization_id: str,
        user_id: str,
        provider: SandboxKind | str | None = None,
    ) -> tuple[Sandbox, bool]:
        row = await load_session(db, session_id=session_id, organization_id=organization_id)

        if row.sandbox_id is not None:
            bound = await repo.find_sandbox(db, sandbox_id=row.sandbox_id)
            if bound is not None:
                return bound, False

        existing = await repo.find_sandbox_for_repository(db, repository_id=row.repository_id)
        if existing is not None:
            await bind_sandbox(db, row=row, sandbox_id=existing.id)
            return existing, False

        async with self._lock_for(row.repository_id):
            existing = await repo.find_sandbox_for_repository(db, repository_id=row.repository_id)
            if existing is not None:
                await bind_sandbox(db, row=row, sandbox_id=existing.id)
                return existing, False

            repository = await load_repository(db, repository_id=row.repository_id)
            repository_id = repository.id
            connection = await find_git_connection(
                db,
                user_id=user_id,
                provider=repository.provider,
            )
            sandbox_provider = self._resolve_provider(provider)
            info = await sandbox_provider.create_workspace(
                CreateWorkspaceOptions(
                    name=f"{repository.name}-{str(repository.id)[:8]}",
                    repo_url=repository.url,
                    branch=row.branch_name,
                    git_token=connection.access_token if connection else None,
                )
            )
            logger.info(
                "Provisioned %s workspace %s for repository %s",
                sandbox_provider.kind.value,
                info.id,
                repository.id,
            )

            try:
                sandbox = await repo.insert_sandbox(
                    db,
                    repository_id=repository_id,
                    workspace_id=info.id,
                    provider=sandbox_provider.kind.value,
                    status=SandboxStatus.RUNNING.value,
                    preview_url=info.preview_url,
                )
            except IntegrityError:
                await db.rollback()
                return await self._converge_on_winner(
                    db,
                    session_row=row,
                    repository_id=repository_id,
                    provider=sandbox_provider,
                    orphan=info,
                )

            await bind_sandbox(db, row=row, sandbox_id=sandbox.id)
            return sandbox, True

    async def _converge_on_winner(
        self,
        db: AsyncSession,
        *,
        session_row,
        repository_id: UUID,
        provider: SandboxProvider,
        orphan: WorkspaceInfo,
    ) -> tuple[Sandbox, bool]:
        logger.info(
            "Sandbox for repository %s was created concurrently; discarding workspace %s",
            repository_id,
            orphan.id,
        )
        try:
            await provider.delete_workspace(orphan.id)
        except SandboxCommandError:
            logger.warning("Failed to delete orphaned workspace %s", orphan.id, exc_info=True)

        winner = await repo.find_sandbox_for_repository(db, repository_id=repository_id)
        if winner is None:
            raise SandboxNotReadyError("Sandbox provisioning conflict could not be resolved")
        # The rollback expired the session row.
        await db.refresh(session_row)
        await bind_sandbox(db, row=session_row, sandbox_id=winner.id)
        return winner, False

    async def ensure_running(self, db: AsyncSession, *, sandbox: Sandbox) -> Sandbox:
        if not sandbox.workspace_id:
            raise SandboxNotReadyError("Sandbox has no workspace")
        provider = self.provider_for(sandbox)

        try:
            info = await provider.get_workspace(sandbox.workspace_id)
        except SandboxCommandError as exc:
            raise SandboxResumeError(f"Failed to start sandbox: {exc}") from exc

        if info is None:
            await repo.update_sandbox(db, row=sandbox, status=SandboxStatus.ERROR.value)
            raise SandboxExpiredError()

        if info.status == WorkspaceStatus.RUNNING:
            if sandbox.status != SandboxStatus.RUNNING.value:
                return await repo.update_sandbox(
                    db,
                    row=sandbox,
                    status=SandboxStatus.RUNNING.value,
                    last_active_at=_now(),
                )
            await repo.touch_sandbox(db, sandbox_id=sandbox.id)
            return sandbox

        if info.ephemeral:
            await repo.update_sandbox(db, row=sandbox, status=SandboxStatus.ERROR.value)
            raise SandboxExpiredError()
        if info.status == WorkspaceStatus.ERROR:
            raise SandboxResumeError("Failed to start sandbox: workspace is in an error state")

        try:
            if info.status in _RESUMABLE:
                logger.info("Resuming workspace %s (state: %s)", sandbox.workspace_id, info.status.value)
                info = await provider.resume_workspace(sandbox.workspace_id)
            if info.status != WorkspaceStatus.RUNNING:
                info = await self._wait_until_running(provider, sandbox.workspace_id)
            await provider.prepare_runtime(sandbox.workspace_id)
        except SandboxCommandError as exc:
            raise SandboxResumeError(f"Failed to start sandbox: {exc}") from exc

        return await repo.update_sandbox(
            db,
            row=sandbox,
            status=SandboxStatus.RUNNING.value,
            preview_url=info.preview_url or sandbox.preview_url,
            last_active_at=_now(),
        )

    async def _wait_until_running(self, provider: SandboxProvider, workspace_id: str) -> WorkspaceInfo:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._resume_timeout
        while True:
            info = await provider.get_workspace(workspace_id)
            if info is None:
                raise SandboxExpiredError()
            if info.status == WorkspaceStatus.RUNNING:
                return info
            if info.status == WorkspaceStatus.ERROR:
                raise SandboxResumeError("Failed to start sandbox: workspace entered an error state")
            if loop.time() >= deadline:
                raise SandboxResumeTimeoutError(
                    f"Sandbox did not start within {self._resume_timeout:g} seconds"
                )
            await asyncio.sleep(self._poll_interval)

    async def pause(self, db: AsyncSession, *, sandbox: Sandbox) -> Sandbox:
        if sandbox.workspace_id:
            try:
                await self.provider_for(sandbox).pause_workspace(sandbox.workspace_id)
            except (SandboxCommandError, SandboxProviderUnavailableError):
                logger.warning("Failed to pause workspace %s", sandbox.workspace_id, exc_info=True)
        return await repo.update_sandbox(db, row=sandbox, status=SandboxStatus.PAUSED.value)

    async def delete(self, db: AsyncSession, *, sandbox: Sandbox) -> None:
        if sandbox.workspace_id:
            try:
                await self.provider_for(sandbox).delete_workspace(sandbox.workspace_id)
            except (SandboxCommandError, SandboxProviderUnavailableError):
                logger.warning("Failed to delete workspace %s", sandbox.workspace_id, exc_info=True)
        unbound = await unbind_sandbox_everywhere(db, sandbox_id=sandbox.id)
        await repo.delete_sandbox(db, row=sandbox)
        logger.info("Deleted sandbox %s (%s sessions unbound)", sandbox.id, unbound)

    async def refresh_status(self, db: AsyncSession, *, sandbox: Sandbox) -> Sandbox:
        """Sync the cached status with the provider; the cached row wins when the provider is unreachable."""
        if not sandbox.workspace_id:
            return sandbox
        try:
            info = await self.provider_for(sandbox).get_workspace(sandbox.workspace_id)
        except (SandboxCommandError, SandboxProviderUnavailableError):
            logger.warning("Could not read live status of workspace %s", sandbox.workspace_id, exc_info=True)
            return sandbox
        if info is None:
            status = SandboxStatus.ERROR.value
        elif info.status == WorkspaceStatus.RUNNING:
            status = SandboxStatus.RUNNING.value
        elif info.status in _RESUMABLE:
            status = SandboxStatus.PAUSED.value
        elif info.status == WorkspaceStatus.ERROR:
            status = SandboxStatus.ERROR.value
        else:
            status = SandboxStatus.PROVISIONING.value
        preview_url = info.preview_url if info is not None and info.preview_url else sandbox.preview_url
        if status == sandbox.status and preview_url == sandbox.preview_url:
            return sandbox
        return await repo.update_sandbox(db, row=sandbox, status=status, preview_url=preview_url)

    async def touch(self, db: AsyncSession, *, sandbox_id: UUID) -> None:
        await repo.touch_sandbox(db, sandbox_id=sandbox_id)


_manager: SandboxLifecycleManager | None = None
_manager_lock = threading.Lock()


def get_sandbox_manager() -> SandboxLifecycleManager:
    global _manager
    if _manager is None:
        with _manager_lock:
            if _manager is None:
                _manager = SandboxLifecycleManager()
    return _manager
