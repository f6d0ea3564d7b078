from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel


class SandboxKind(str, Enum):
    DAYTONA = "daytona"
    E2B = "e2b"
    MODAL = "modal"


class SandboxStatus(str, Enum):
    PROVISIONING = "provisioning"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


class WorkspaceStatus(str, Enum):
    CREATING = "creating"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True)
class WorkspaceInfo:
    id: str
    status: WorkspaceStatus
    preview_url: str | None = None
    ephemeral: bool = False


@dataclass(frozen=True)
class CreateWorkspaceOptions:
    name: str
    repo_url: str
    branch: str = "main"
    git_token: str | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class CodeOutput:
    type: Literal["stdout", "stderr", "error", "done"]
    content: str


@dataclass(frozen=True)
class FileEntry:
    path: str
    type: Literal["file", "directory"]
    size: int | None = None


class SandboxOut(BaseModel):
    id: str
    repository_id: str
    workspace_id: str | None
    provider: str
    status: str
    preview_url: str | None
    last_active_at: datetime
    last_checkpoint_id: str | None
    created_at: datetime


class SandboxForSessionOut(BaseModel):
    sandbox: SandboxOut
    created: bool


class SandboxForSessionInput(BaseModel):
    provider: SandboxKind | None = None


class SandboxProviderInfo(BaseModel):
    kind: str
    name: str
    available: bool


class SandboxProvidersOut(BaseModel):
    providers: list[SandboxProviderInfo]
    default_provider: str
