from __future__ import annotations

from collections.abc import Sequence

from orchestrator.features.planning import PlanResult
from orchestrator.features.skills import Skill, render_skill


def _skills_section(skills: Sequence[Skill]) -> str:
    if not skills:
        return ""
    rendered = "\n\n".join(render_skill(skill) for skill in skills)
    return f"\n\n## Skills/Guidelines to Follow\n{rendered}"


def _preview_section(preview_url: str | None) -> str:
    if not preview_url:
        return ""
    return (
        "\n\n## Live Preview\n"
        f"The user can see a live preview at: {preview_url}\n"
        "After making changes, remind them to check the preview."
    )


def format_plan_changes(plan: PlanResult) -> str:
    lines: list[str] = []
    for index, change in enumerate(plan.changes, start=1):
        files = f" (Files: {', '.join(change.files)})" if change.files else ""
        lines.append(f"{index}. {change.description}{files}")
    return "\n".join(lines) or "1. Implement the requested feature"


def build_execution_prompt(
    plan: PlanResult,
    *,
    skills: Sequence[Skill] = (),
    preview_url: str | None = None,
) -> str:
    considerations = ""
    if plan.considerations:
        considerations = "\n**Considerations**:\n" + "\n".join(f"- {item}" for item in plan.considerations)
    return (
        "The user has approved the following plan. Please implement it now.\n\n"
        "## Approved Plan\n"
        f"**Summary**: {plan.summary}\n\n"
        "**Changes to make**:\n"
        f"{format_plan_changes(plan)}\n"
        f"{considerations}\n"
        "## Instructions\n"
        "1. Implement each change in the plan\n"
        "2. Provide brief progress updates as you work\n"
        "3. Create or modify files as needed\n"
        "4. Run any necessary commands (npm install, etc.)\n"
        "5. Test that changes work correctly\n"
        "6. When done, summarize what was accomplished\n\n"
        "Remember: Focus on implementing what was approved. If you encounter issues, "
        "explain them simply and suggest solutions."
        f"{_skills_section(skills)}"
        f"{_preview_section(preview_url)}"
    )


def build_chat_prompt(
    content: str,
    *,
    skills: Sequence[Skill] = (),
    preview_url: str | None = None,
) -> str:
    extra = f"{_skills_section(skills)}{_preview_section(preview_url)}"
    if not extra:
        return content
    return f"{content}\n\n---{extra}"
