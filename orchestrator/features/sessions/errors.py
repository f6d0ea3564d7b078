from __future__ import annotations

from collections.abc import Iterable

from orchestrator.features.shared.errors import (
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
)


class SessionsDomainError(Exception):
    """Base exception for feature session operations."""


class SessionNotFoundError(SessionsDomainError, NotFoundError):
    pass


class SessionValidationError(SessionsDomainError, InvalidRequestError):
    pass


class SessionPreconditionError(SessionsDomainError, PreconditionFailedError):
    """Raised when a trigger is not accepted from the session's current status."""

    def __init__(self, *, current: str, required: Iterable[str], trigger: str):
        self.current = current
        self.required = tuple(required)
        self.trigger = trigger
        if len(self.required) == 1:
            expected = self.required[0]
            message = f"Session is not in {expected} status (current: {current})"
        elif self.required:
            expected = ", ".join(self.required)
            message = f"Session must be in one of [{expected}] to {trigger.replace('_', ' ')} (current: {current})"
        else:
            message = f"Trigger '{trigger}' is not accepted (current: {current})"
        super().__init__(message)
