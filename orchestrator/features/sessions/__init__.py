from __future__ import annotations

from .errors import (
    SessionNotFoundError,
    SessionPreconditionError,
    SessionsDomainError,
    SessionValidationError,
)
from .state_machine import SessionStatus, SessionTrigger, allowed_sources, next_status
from .types import SessionCreateInput, SessionSummary, SessionUpdateInput

__all__ = [
    "SessionCreateInput",
    "SessionNotFoundError",
    "SessionPreconditionError",
    "SessionStatus",
    "SessionSummary",
    "SessionTrigger",
    "SessionUpdateInput",
    "SessionValidationError",
    "SessionsDomainError",
    "allowed_sources",
    "next_status",
]
