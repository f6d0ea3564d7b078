from __future__ import annotations

from orchestrator.features.shared.errors import (
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
)


class CheckpointsDomainError(Exception):
    """Base exception for checkpoint operations."""


class CheckpointNotFoundError(CheckpointsDomainError, NotFoundError):
    pass


class CheckpointValidationError(CheckpointsDomainError, InvalidRequestError):
    pass


class CheckpointNotRestorableError(CheckpointsDomainError, PreconditionFailedError):
    def __init__(self, message: str = "Checkpoint has no provider snapshot and cannot be restored"):
        super().__init__(message)
