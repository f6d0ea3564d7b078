from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header

from .errors import InvalidRequestError, UnauthorizedError, to_http_exception


@dataclass(frozen=True)
class RequestActor:
    user_id: str
    organization_id: str


async def get_request_actor(
    x_user_id: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
) -> RequestActor:
    """Identity is asserted by the upstream auth gateway; this service only reads it."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise to_http_exception(UnauthorizedError("Unauthorized"))
    organization_id = (x_organization_id or "").strip()
    if not organization_id:
        raise to_http_exception(InvalidRequestError("No active organization"))
    return RequestActor(user_id=user_id, organization_id=organization_id)
