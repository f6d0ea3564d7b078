from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.features.agents import AgentProviderKind

BuildMode = Literal["build", "chat"]

NDJSON_MEDIA_TYPE = "application/x-ndjson"


class BuildInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: AgentProviderKind | None = None


class ChatInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str = Field(min_length=1, max_length=20_000)
    provider: AgentProviderKind | None = None


@dataclass(frozen=True)
class BuildTarget:
    """Everything a stream needs after the synchronous preparation succeeded."""

    session_id: UUID
    sandbox_id: UUID
    workspace_id: str
    mode: BuildMode
    prompt: str
    preview_url: str | None = None
    provider_kind: AgentProviderKind | str | None = None
    skills: tuple[str, ...] = ()
    summary: str | None = None
