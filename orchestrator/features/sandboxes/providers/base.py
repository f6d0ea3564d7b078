"""Contract every remote execution backend implements.

Providers talk to their vendor API only; they never read or write the
database. Persisting workspace ids, statuses and checkpoints is the caller's
job (see `SandboxLifecycleManager`).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from orchestrator.features.sandboxes.types import (
    CodeOutput,
    CommandResult,
    CreateWorkspaceOptions,
    FileEntry,
    SandboxKind,
    WorkspaceInfo,
)


class SandboxProvider(ABC):
    kind: SandboxKind
    name: str

    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def create_workspace(self, options: CreateWorkspaceOptions) -> WorkspaceInfo:
        """Provision a workspace with the repository cloned and the agent runtime loaded.

        Raises:
            SandboxProvisionError: if any provisioning step fails. The
                half-built remote workspace is deleted before raising.
        """

    @abstractmethod
    async def get_workspace(self, workspace_id: str) -> WorkspaceInfo | None:
        """Live status from the vendor, or None when the workspace no longer exists."""

    @abstractmethod
    async def resume_workspace(self, workspace_id: str) -> WorkspaceInfo:
        ...

    @abstractmethod
    async def pause_workspace(self, workspace_id: str) -> None:
        ...

    @abstractmethod
    async def delete_workspace(self, workspace_id: str) -> None:
        ...

    @abstractmethod
    async def execute_command(
        self,
        workspace_id: str,
        command: str,
        *,
        cwd: str | None = None,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        ...

    @abstractmethod
    def run_code(
        self,
        workspace_id: str,
        code: str,
        *,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[CodeOutput]:
        """Run code in the workspace interpreter context, streaming its output.

        The stream always ends with a single `done` item; a failed run yields
        an `error` item before it.
        """

    @abstractmethod
    async def prepare_runtime(self, workspace_id: str) -> None:
        """Re-create the interpreter context and re-import the agent runtime.

        Resume does not preserve in-memory interpreter state, so this runs
        after every resume and restore.
        """

    @abstractmethod
    async def get_preview_url(self, workspace_id: str, port: int = 3000) -> str:
        ...

    @abstractmethod
    async def read_file(self, workspace_id: str, path: str) -> str:
        ...

    @abstractmethod
    async def write_file(self, workspace_id: str, path: str, content: str) -> None:
        ...

    @abstractmethod
    async def list_files(self, workspace_id: str, path: str) -> list[FileEntry]:
        ...

    @abstractmethod
    async def create_snapshot(self, workspace_id: str, label: str) -> str:
        """Returns the vendor snapshot id."""

    @abstractmethod
    async def restore_snapshot(self, workspace_id: str, snapshot_id: str) -> None:
        ...
