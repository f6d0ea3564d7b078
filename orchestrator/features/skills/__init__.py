from __future__ import annotations

from .errors import SkillNotFoundError, SkillsDomainError
from .service import (
    filter_skills_by_message,
    get_skill,
    list_skills,
    render_skill,
    skills_for_request,
    tech_skills_for_stack,
)
from .types import Skill

__all__ = [
    "Skill",
    "SkillNotFoundError",
    "SkillsDomainError",
    "filter_skills_by_message",
    "get_skill",
    "list_skills",
    "render_skill",
    "skills_for_request",
    "tech_skills_for_stack",
]
