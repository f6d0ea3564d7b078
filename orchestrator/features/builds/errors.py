from __future__ import annotations

from orchestrator.features.shared.errors import ConflictError, InvalidRequestError


class BuildsDomainError(Exception):
    """Base exception for build and chat execution."""


class BuildValidationError(BuildsDomainError, InvalidRequestError):
    pass


class BuildInProgressError(BuildsDomainError, ConflictError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("A build is already streaming for this session")
