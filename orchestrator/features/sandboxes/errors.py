from __future__ import annotations

from orchestrator.features.shared.errors import (
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
    ProviderError,
)


class SandboxesDomainError(Exception):
    """Base exception for sandbox lifecycle operations."""


class SandboxNotFoundError(SandboxesDomainError, NotFoundError):
    pass


class UnknownSandboxProviderError(SandboxesDomainError, InvalidRequestError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown sandbox provider: {kind}")


class SandboxProviderUnavailableError(SandboxesDomainError, PreconditionFailedError):
    def __init__(self, kind: str, reason: str = ""):
        self.kind = kind
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Sandbox provider '{kind}' is not available{suffix}")


class SandboxNotReadyError(SandboxesDomainError, PreconditionFailedError):
    """The sandbox has no backing workspace yet (or lost it)."""


class SandboxProvisionError(SandboxesDomainError, ProviderError):
    pass


class SandboxResumeError(SandboxesDomainError, ProviderError):
    pass


class SandboxResumeTimeoutError(SandboxResumeError):
    pass


class SandboxExpiredError(SandboxesDomainError, PreconditionFailedError):
    def __init__(self, message: str = "Sandbox expired. Please create a new session."):
        super().__init__(message)


class SandboxCommandError(SandboxesDomainError, ProviderError):
    """A provider API call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, *, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)
