from __future__ import annotations

from orchestrator.features.shared.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
    ProviderError,
)


class PlanningDomainError(Exception):
    """Base exception for plan generation and approval."""


class PlanValidationError(PlanningDomainError, InvalidRequestError):
    pass


class PlannerUnavailableError(PlanningDomainError, PreconditionFailedError):
    def __init__(self, reason: str = "PLANNER_API_KEY is not set"):
        super().__init__(f"Planner is not configured: {reason}")


class PlanGenerationError(PlanningDomainError, ProviderError):
    pass


class ApprovalNotFoundError(PlanningDomainError, NotFoundError):
    def __init__(self, message: str = "No pending approval found for this session"):
        super().__init__(message)


class ApprovalConflictError(PlanningDomainError, ConflictError):
    pass


class PlanNotApprovedError(PlanningDomainError, PreconditionFailedError):
    def __init__(self, message: str = "No approved plan found for this session"):
        super().__init__(message)
