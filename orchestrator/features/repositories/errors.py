from __future__ import annotations

from orchestrator.features.shared.errors import (
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
)


class RepositoriesDomainError(Exception):
    """Base exception for repository and git connection lookups."""


class RepositoryNotFoundError(RepositoriesDomainError, NotFoundError):
    pass


class RepositoryValidationError(RepositoriesDomainError, InvalidRequestError):
    pass


class GitConnectionMissingError(RepositoriesDomainError, PreconditionFailedError):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"No {provider} connection found. Please connect your account.")
