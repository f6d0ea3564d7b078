from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SessionCreateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repository_id: str
    name: str = Field(min_length=1, max_length=255)
    branch_name: str | None = Field(default=None, min_length=1, max_length=255)


class SessionUpdateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    branch_name: str | None = Field(default=None, min_length=1, max_length=255)


class SessionSummary(BaseModel):
    id: str
    organization_id: str
    repository_id: str
    name: str
    branch_name: str
    status: str
    sandbox_id: str | None
    agent_provider: str | None
    agent_session_id: str | None
    created_by_id: str
    created_at: datetime
    updated_at: datetime
