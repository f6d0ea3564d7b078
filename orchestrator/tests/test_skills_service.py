from __future__ import annotations

import pytest

from orchestrator.features.skills import service as skills_service
from orchestrator.features.skills.errors import SkillNotFoundError
from orchestrator.features.skills.types import Skill


def test_tech_skills_match_stack_entries_loosely():
    slugs = [skill.slug for skill in skills_service.tech_skills_for_stack(["React 18", "Next.js", "TailwindCSS", ""])]

    assert slugs == ["react", "tailwind"]


def test_filter_keeps_triggerless_skills_and_matching_triggers():
    always = Skill(id="a", name="Always", slug="always", content="x")
    forms = Skill(id="f", name="Forms", slug="forms", content="x", triggers=["form"])
    charts = Skill(id="c", name="Charts", slug="charts", content="x", triggers=["chart"])

    kept = skills_service.filter_skills_by_message([always, forms, charts], "Add a signup FORM")

    assert [skill.slug for skill in kept] == ["always", "forms"]


def test_filter_without_message_keeps_everything():
    skills = skills_service.list_skills()

    assert skills_service.filter_skills_by_message(skills, None) == skills


def test_skills_for_request_combines_platform_and_stack_skills():
    slugs = {
        skill.slug
        for skill in skills_service.skills_for_request(
            tech_stack=["react"],
            message="Add a dark mode toggle component with a new css theme",
        )
    }

    assert {"ui-components", "styling", "react"} <= slugs
    assert "testing" not in slugs


def test_get_skill_by_slug():
    assert skills_service.get_skill(" Forms ").name == "Form Handling"
    with pytest.raises(SkillNotFoundError):
        skills_service.get_skill("missing")


def test_render_skill_uses_heading():
    skill = skills_service.get_skill("react")

    assert skills_service.render_skill(skill).startswith("## React Patterns\n")
