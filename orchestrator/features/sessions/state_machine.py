"""Authoritative status transitions for a feature session.

Every orchestration step names a trigger; the table below is the only place
that decides which status follows. Pairs absent from the table are rejected,
never coerced.
"""
from __future__ import annotations

from enum import Enum

from .errors import SessionPreconditionError


class SessionStatus(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    PLAN_REVIEW = "plan_review"
    BUILDING = "building"
    READY = "ready"
    REVIEWING = "reviewing"
    ERROR = "error"


class SessionTrigger(str, Enum):
    PLAN_REQUESTED = "plan_requested"
    PLAN_GENERATED = "plan_generated"
    PLAN_FAILED = "plan_failed"
    APPROVED = "approved"
    REJECTED = "rejected"
    BUILD_REQUESTED = "build_requested"
    BUILD_COMPLETED = "build_completed"
    CHAT_REQUESTED = "chat_requested"
    CHAT_COMPLETED = "chat_completed"
    BUILD_FAILED = "build_failed"
    PULL_REQUEST_OPENED = "pull_request_opened"
    RETRIED = "retried"


S = SessionStatus
T = SessionTrigger

TRANSITIONS: dict[tuple[SessionStatus, SessionTrigger], SessionStatus] = {
    (S.IDLE, T.PLAN_REQUESTED): S.PLANNING,
    (S.READY, T.PLAN_REQUESTED): S.PLANNING,
    (S.REVIEWING, T.PLAN_REQUESTED): S.PLANNING,
    (S.PLANNING, T.PLAN_GENERATED): S.PLAN_REVIEW,
    (S.PLANNING, T.PLAN_FAILED): S.IDLE,
    (S.PLAN_REVIEW, T.APPROVED): S.BUILDING,
    (S.PLAN_REVIEW, T.REJECTED): S.IDLE,
    (S.BUILDING, T.BUILD_REQUESTED): S.BUILDING,
    (S.BUILDING, T.BUILD_COMPLETED): S.READY,
    (S.BUILDING, T.CHAT_COMPLETED): S.IDLE,
    (S.BUILDING, T.BUILD_FAILED): S.ERROR,
    (S.IDLE, T.CHAT_REQUESTED): S.BUILDING,
    (S.READY, T.PULL_REQUEST_OPENED): S.REVIEWING,
    (S.ERROR, T.RETRIED): S.IDLE,
}

del S, T


def allowed_sources(trigger: SessionTrigger | str) -> tuple[str, ...]:
    trigger = SessionTrigger(trigger)
    return tuple(source.value for source, name in TRANSITIONS if name is trigger)


def next_status(current: SessionStatus | str, trigger: SessionTrigger | str) -> SessionStatus:
    trigger = SessionTrigger(trigger)
    try:
        source = SessionStatus(current)
    except ValueError:
        source = None
    target = TRANSITIONS.get((source, trigger)) if source is not None else None
    if target is None:
        raise SessionPreconditionError(
            current=str(getattr(current, "value", current)),
            required=allowed_sources(trigger),
            trigger=trigger.value,
        )
    return target


def can_transition(current: SessionStatus | str, trigger: SessionTrigger | str) -> bool:
    try:
        next_status(current, trigger)
    except SessionPreconditionError:
        return False
    return True
