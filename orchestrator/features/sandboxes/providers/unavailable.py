from __future__ import annotations

from collections.abc import AsyncIterator
from typing import NoReturn

from orchestrator.features.sandboxes.errors import SandboxProviderUnavailableError
from orchestrator.features.sandboxes.types import (
    CodeOutput,
    CommandResult,
    CreateWorkspaceOptions,
    FileEntry,
    SandboxKind,
    WorkspaceInfo,
)

from .base import SandboxProvider


class UnavailableSandboxProvider(SandboxProvider):
    """Placeholder for a declared backend that has no integration in this deployment."""

    def __init__(self, kind: SandboxKind, name: str, reason: str = "not configured") -> None:
        self.kind = kind
        self.name = name
        self.reason = reason

    def is_available(self) -> bool:
        return False

    def _unavailable(self) -> NoReturn:
        raise SandboxProviderUnavailableError(self.kind.value, self.reason)

    async def create_workspace(self, options: CreateWorkspaceOptions) -> WorkspaceInfo:
        self._unavailable()

    async def get_workspace(self, workspace_id: str) -> WorkspaceInfo | None:
        self._unavailable()

    async def resume_workspace(self, workspace_id: str) -> WorkspaceInfo:
        self._unavailable()

    async def pause_workspace(self, workspace_id: str) -> None:
        self._unavailable()

    async def delete_workspace(self, workspace_id: str) -> None:
        self._unavailable()

    async def execute_command(
        self,
        workspace_id: str,
        command: str,
        *,
        cwd: str | None = None,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self._unavailable()

    async def run_code(
        self,
        workspace_id: str,
        code: str,
        *,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[CodeOutput]:
        self._unavailable()
        yield  # pragma: no cover

    async def prepare_runtime(self, workspace_id: str) -> None:
        self._unavailable()

    async def get_preview_url(self, workspace_id: str, port: int = 3000) -> str:
        self._unavailable()

    async def read_file(self, workspace_id: str, path: str) -> str:
        self._unavailable()

    async def write_file(self, workspace_id: str, path: str, content: str) -> None:
        self._unavailable()

    async def list_files(self, workspace_id: str, path: str) -> list[FileEntry]:
        self._unavailable()

    async def create_snapshot(self, workspace_id: str, label: str) -> str:
        self._unavailable()

    async def restore_snapshot(self, workspace_id: str, snapshot_id: str) -> None:
        self._unavailable()
