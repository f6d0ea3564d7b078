from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessagePhase(str, Enum):
    PLANNING = "planning"
    BUILDING = "building"


PLAN_ARTIFACT_TYPE = "plan"


class MessageOut(BaseModel):
    id: str
    session_id: str
    user_id: str | None
    role: str
    content: str
    phase: str | None
    metadata: dict[str, Any] | None
    created_at: datetime
