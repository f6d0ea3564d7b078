from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

AgentEventType = Literal[
    "start",
    "message",
    "plan",
    "question",
    "progress",
    "tool_use",
    "tool_result",
    "preview_url",
    "error",
    "done",
]

TERMINAL_EVENT_TYPES: frozenset[str] = frozenset({"done", "error"})
TRANSCRIPT_EVENT_TYPES: frozenset[str] = frozenset({"message", "plan", "question", "progress"})


class AgentProviderKind(str, Enum):
    OPENCODE = "opencode"
    CLAUDE_AGENT_SDK = "claude-agent-sdk"


class AgentStreamEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: AgentEventType
    content: str = ""
    metadata: dict[str, Any] | None = None
    message_id: str | None = Field(default=None, alias="messageId")

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_frame(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def encode_ndjson(event: AgentStreamEvent) -> bytes:
    return (json.dumps(event.to_frame(), ensure_ascii=False, default=str) + "\n").encode("utf-8")


def stream_event_schema() -> dict[str, Any]:
    return AgentStreamEvent.model_json_schema(by_alias=True)


@dataclass(frozen=True)
class CreateAgentSessionOptions:
    session_id: str
    sandbox_id: str
    workspace_id: str
    preview_url: str | None = None
    system_prompt: str | None = None
    model: str | None = None
    skills: tuple[str, ...] = ()
    sandbox_kind: str | None = None


@dataclass(frozen=True)
class SendAgentMessageOptions:
    session_id: str
    workspace_id: str
    content: str
    preview_url: str | None = None


@dataclass
class AgentSession:
    session_id: str
    native_id: str
    provider: AgentProviderKind
    workspace_id: str
    sandbox_kind: str | None = None
    status: Literal["idle", "busy", "error"] = "idle"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AgentSessionCreateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: AgentProviderKind | None = None
    model: str | None = Field(default=None, max_length=255)
    system_prompt: str | None = Field(default=None, max_length=20_000)


class AgentSessionOut(BaseModel):
    session_id: str
    provider: str
    native_id: str
    workspace_id: str
    status: str
    created_at: datetime


class AgentSessionLookupOut(BaseModel):
    agent_session: AgentSessionOut | None
