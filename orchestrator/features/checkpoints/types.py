from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CheckpointType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class CheckpointCreateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = Field(min_length=1, max_length=255)
    session_id: str | None = None
    type: CheckpointType = CheckpointType.MANUAL


class CheckpointOut(BaseModel):
    id: str
    session_id: str | None
    sandbox_id: str
    label: str
    type: str
    provider_snapshot_id: str | None
    restorable: bool
    created_at: datetime


class CheckpointListOut(BaseModel):
    checkpoints: list[CheckpointOut]
