from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class KeyFile(BaseModel):
    path: str
    description: str = ""


class RepositoryContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str | None = None
    tech_stack: list[str] = Field(default_factory=list, alias="techStack")
    key_files: list[KeyFile] = Field(default_factory=list, alias="keyFiles")


class RepositoryCreateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    provider: str = Field(default="github", min_length=1, max_length=32)
    default_branch: str = Field(default="main", min_length=1, max_length=255)
    context: RepositoryContext | None = None


class RepositoryDetail(BaseModel):
    id: str
    organization_id: str
    name: str
    url: str
    provider: str
    default_branch: str
    context: RepositoryContext | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class AgentContext:
    repo_name: str
    repo_url: str
    branch: str
    tech_stack: list[str] = field(default_factory=list)
    existing_files: list[str] = field(default_factory=list)
