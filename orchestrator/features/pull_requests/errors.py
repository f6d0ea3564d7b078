from __future__ import annotations

from orchestrator.features.shared.errors import (
    InvalidRequestError,
    PreconditionFailedError,
    ProviderError,
)


class PullRequestsDomainError(Exception):
    """Base exception for publishing a session's changes."""


class NoChangesToCommitError(PullRequestsDomainError, PreconditionFailedError):
    def __init__(self):
        super().__init__("No changes to commit")


class GitStepError(PullRequestsDomainError, ProviderError):
    """A git command inside the sandbox failed; `step` names which one."""

    def __init__(self, step: str, output: str = ""):
        self.step = step
        self.output = output
        detail = output.strip()[:500]
        message = f"Git {step} failed: {detail}" if detail else f"Git {step} failed"
        super().__init__(message)


class InvalidGitHubUrlError(PullRequestsDomainError, InvalidRequestError):
    def __init__(self, url: str):
        self.url = url
        super().__init__("Invalid GitHub repository URL")


class GitHubApiError(PullRequestsDomainError, ProviderError):
    def __init__(self, message: str, *, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class UnsupportedGitProviderError(PullRequestsDomainError, InvalidRequestError):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported git provider: {provider}")
