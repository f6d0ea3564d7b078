from __future__ import annotations

from .errors import (
    SandboxCommandError,
    SandboxExpiredError,
    SandboxesDomainError,
    SandboxNotFoundError,
    SandboxNotReadyError,
    SandboxProviderUnavailableError,
    SandboxProvisionError,
    SandboxResumeError,
    SandboxResumeTimeoutError,
    UnknownSandboxProviderError,
)
from .providers import SandboxProvider, get_sandbox_provider, list_sandbox_providers
from .service import SandboxLifecycleManager, get_sandbox_manager, to_sandbox_out
from .types import (
    CodeOutput,
    CommandResult,
    CreateWorkspaceOptions,
    FileEntry,
    SandboxKind,
    SandboxOut,
    SandboxStatus,
    WorkspaceInfo,
    WorkspaceStatus,
)

__all__ = [
    "CodeOutput",
    "CommandResult",
    "CreateWorkspaceOptions",
    "FileEntry",
    "SandboxCommandError",
    "SandboxExpiredError",
    "SandboxKind",
    "SandboxLifecycleManager",
    "SandboxNotFoundError",
    "SandboxNotReadyError",
    "SandboxOut",
    "SandboxProvider",
    "SandboxProviderUnavailableError",
    "SandboxProvisionError",
    "SandboxResumeError",
    "SandboxResumeTimeoutError",
    "SandboxStatus",
    "SandboxesDomainError",
    "UnknownSandboxProviderError",
    "WorkspaceInfo",
    "WorkspaceStatus",
    "get_sandbox_manager",
    "get_sandbox_provider",
    "list_sandbox_providers",
    "to_sandbox_out",
]
