from __future__ import annotations

from fastapi import HTTPException


class OrchestrationError(Exception):
    """Base for errors surfaced to callers with a stable category."""

    category = "internal"
    status_code = 500


class UnauthorizedError(OrchestrationError):
    category = "unauthorized"
    status_code = 401


class InvalidRequestError(OrchestrationError):
    category = "invalid_request"
    status_code = 400


class PreconditionFailedError(OrchestrationError):
    category = "precondition_failed"
    status_code = 412


class NotFoundError(OrchestrationError):
    category = "not_found"
    status_code = 404


class ConflictError(OrchestrationError):
    category = "conflict"
    status_code = 409


class ProviderError(OrchestrationError):
    """A remote sandbox, agent or source-host call failed; the caller may retry."""

    category = "provider_error"
    status_code = 502


class InternalError(OrchestrationError):
    category = "internal"
    status_code = 500


def error_detail(exc: OrchestrationError) -> dict[str, str]:
    return {"error": exc.category, "message": str(exc)}


def to_http_exception(exc: OrchestrationError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=error_detail(exc))
