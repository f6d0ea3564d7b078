from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class PullRequestInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    branch_name: str | None = Field(default=None, min_length=1, max_length=255)


class PullRequestOut(BaseModel):
    url: str
    number: int
    title: str
    branch: str
    message_id: str
    session_status: str


@dataclass(frozen=True)
class CreatedPullRequest:
    url: str
    number: int


class GitRepositoryOut(BaseModel):
    id: str
    name: str
    full_name: str
    private: bool
    description: str | None = None
    url: str
    clone_url: str
    default_branch: str
    owner: str
    owner_avatar: str | None = None
    updated_at: str | None = None
    language: str | None = None


class GitRepositoryListOut(BaseModel):
    repositories: list[GitRepositoryOut]


class GitBranchOut(BaseModel):
    name: str
    sha: str
    protected: bool = False


class GitBranchListOut(BaseModel):
    branches: list[GitBranchOut]
