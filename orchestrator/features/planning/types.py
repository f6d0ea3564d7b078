from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.features.repositories import AgentContext


class PlanChange(BaseModel):
    description: str
    files: list[str] = Field(default_factory=list)


class PlanResult(BaseModel):
    summary: str
    changes: list[PlanChange] = Field(default_factory=list)
    considerations: list[str] = Field(default_factory=list)


PlanGenerator = Callable[[str, AgentContext], Awaitable[PlanResult]]


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class PlanRequestInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    request: str = Field(min_length=1, max_length=20_000)


class ApprovalInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: ApprovalAction
    comment: str | None = Field(default=None, max_length=5_000)


class ApprovalOut(BaseModel):
    id: str
    session_id: str
    message_id: str
    status: str
    reviewer_id: str | None
    comment: str | None
    created_at: datetime
    reviewed_at: datetime | None


class PlanGeneratedOut(BaseModel):
    plan: PlanResult
    message_id: str
    approval_id: str
    status: str


class LatestPlanOut(BaseModel):
    plan: PlanResult | None
    message_id: str | None = None
    approval: ApprovalOut | None = None


class ApprovalResolvedOut(BaseModel):
    approval: ApprovalOut
    session_status: str
