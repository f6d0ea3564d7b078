from __future__ import annotations

from orchestrator.features.shared.errors import (
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
    ProviderError,
)


class AgentsDomainError(Exception):
    """Base exception for agent provider operations."""


class UnknownAgentProviderError(AgentsDomainError, InvalidRequestError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown agent provider: {kind}")


class AgentProviderDisabledError(AgentsDomainError, PreconditionFailedError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Agent provider {kind} is disabled")


class AgentSessionNotFoundError(AgentsDomainError, NotFoundError):
    pass


class AgentWorkspaceNotFoundError(AgentsDomainError, NotFoundError):
    def __init__(self, workspace_id: str):
        self.workspace_id = workspace_id
        super().__init__(f"Workspace {workspace_id} not found")


class AgentSandboxRequiredError(AgentsDomainError, PreconditionFailedError):
    def __init__(self, message: str = "Session has no sandbox. Create a sandbox first."):
        super().__init__(message)


class AgentBackendError(AgentsDomainError, ProviderError):
    """The agent backend rejected a request or could not be reached."""

    def __init__(self, message: str, *, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)
