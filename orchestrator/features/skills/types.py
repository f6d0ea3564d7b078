from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class Skill(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    content: str
    triggers: list[str] = Field(default_factory=list)
    author_type: Literal["platform", "organization", "user"] = "platform"
    is_active: bool = True
    version: str = "1.0.0"


class SkillListOut(BaseModel):
    skills: list[Skill]
