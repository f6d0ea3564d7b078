from __future__ import annotations

from collections.abc import Iterable

from .catalog import PLATFORM_SKILLS, TECH_SKILLS
from .errors import SkillNotFoundError
from .types import Skill


def list_skills() -> list[Skill]:
    return [*PLATFORM_SKILLS, *TECH_SKILLS.values()]


def get_skill(slug: str) -> Skill:
    clean_slug = slug.strip().lower()
    for skill in list_skills():
        if skill.slug == clean_slug:
            return skill
    raise SkillNotFoundError(clean_slug)


def tech_skills_for_stack(tech_stack: Iterable[str]) -> list[Skill]:
    matched: dict[str, Skill] = {}
    for tech in tech_stack:
        lowered = tech.strip().lower()
        if not lowered:
            continue
        for key, skill in TECH_SKILLS.items():
            if key in lowered or lowered in key:
                matched.setdefault(skill.slug, skill)
    return list(matched.values())


def filter_skills_by_message(skills: Iterable[Skill], message: str | None) -> list[Skill]:
    """Skills without triggers always apply; the rest need a trigger in the message."""
    skills = list(skills)
    if not message:
        return skills
    lowered = message.lower()
    return [
        skill
        for skill in skills
        if not skill.triggers or any(trigger.lower() in lowered for trigger in skill.triggers)
    ]


def skills_for_request(*, tech_stack: Iterable[str], message: str | None) -> list[Skill]:
    candidates = [*PLATFORM_SKILLS, *tech_skills_for_stack(tech_stack)]
    return [skill for skill in filter_skills_by_message(candidates, message) if skill.is_active]


def render_skill(skill: Skill) -> str:
    return f"## {skill.name}\n{skill.content}"
