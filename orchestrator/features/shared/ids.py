from __future__ import annotations

from uuid import UUID

from .errors import InvalidRequestError


def to_uuid(value: UUID | str, *, field_name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid {field_name}.") from exc
