from __future__ import annotations

from .service import (
    append_message,
    get_message,
    is_plan_artifact,
    latest_plan_message,
    list_messages,
    to_message_out,
)
from .types import PLAN_ARTIFACT_TYPE, MessageOut, MessagePhase, MessageRole

__all__ = [
    "MessageOut",
    "MessagePhase",
    "MessageRole",
    "PLAN_ARTIFACT_TYPE",
    "append_message",
    "get_message",
    "is_plan_artifact",
    "latest_plan_message",
    "list_messages",
    "to_message_out",
]
