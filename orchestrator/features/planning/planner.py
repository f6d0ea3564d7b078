"""Default plan generator backed by an OpenAI-compatible chat model."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import ValidationError

from orchestrator.core.config import Settings, get_settings
from orchestrator.features.repositories import AgentContext

from .errors import PlanGenerationError, PlannerUnavailableError
from .types import PlanChange, PlanResult

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

PLANNER_SYSTEM_PROMPT = """You are a product planning assistant for a software development platform. \
Your job is to understand feature requests and create clear, actionable plans.

## Project Context
- Repository: {repo_name}
- Branch: {branch}
- Tech Stack: {tech_stack}
- Key Files: {key_files}

## Instructions
1. Understand what the user wants to achieve
2. Create a plan in plain language that a non-technical person can understand
3. Focus on WHAT will be built, not HOW (no code)
4. List the files that will likely be changed

## Output Format
Respond with a JSON object:
{{
  "summary": "One sentence describing the feature",
  "changes": [
    {{"description": "User-visible change 1", "files": ["file1.tsx"]}},
    {{"description": "User-visible change 2", "files": ["file2.tsx"]}}
  ],
  "considerations": ["Any important notes or questions"]
}}

IMPORTANT: Respond ONLY with valid JSON, no markdown or explanation."""


@dataclass(frozen=True)
class PlannerModelSpec:
    name: str
    build_model: Callable[[], Any]


def planner_model_spec(settings: Settings | None = None) -> PlannerModelSpec:
    resolved = settings or get_settings()

    def _build_model() -> ChatOpenAI:
        if not resolved.planner_api_key:
            raise PlannerUnavailableError()
        model_kwargs: dict[str, Any] = {
            "model": resolved.planner_model,
            "api_key": resolved.planner_api_key,
            "temperature": resolved.planner_temperature,
        }
        if resolved.planner_base_url:
            # OpenAI-compatible providers often need a custom base URL.
            model_kwargs["base_url"] = resolved.planner_base_url
        return ChatOpenAI(**model_kwargs)

    return PlannerModelSpec(name=resolved.planner_model, build_model=_build_model)


def build_planner_messages(request: str, context: AgentContext) -> list[BaseMessage]:
    system_prompt = PLANNER_SYSTEM_PROMPT.format(
        repo_name=context.repo_name,
        branch=context.branch,
        tech_stack=", ".join(context.tech_stack) or "Unknown",
        key_files=", ".join(context.existing_files[:50]) or "Unknown",
    )
    return [SystemMessage(content=system_prompt), HumanMessage(content=request)]


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") in {"text", "output_text"}:
            parts.append(str(block.get("text") or ""))
    return "".join(parts)


def fallback_plan(text: str) -> PlanResult:
    return PlanResult(
        summary=text.strip()[:200],
        changes=[PlanChange(description="Implement the requested feature")],
        considerations=["Plan could not be parsed - review manually"],
    )


def parse_plan_output(text: str) -> PlanResult:
    """Parse model output into a plan; anything that is not a valid plan object falls back."""
    cleaned = text.strip()
    fenced = _FENCED_JSON.match(cleaned)
    if fenced:
        cleaned = fenced.group(1)
    try:
        payload = json.loads(cleaned)
        return PlanResult.model_validate(payload)
    except (json.JSONDecodeError, ValidationError):
        logger.info("Planner output was not a valid plan; using fallback plan")
        return fallback_plan(text)


class ChatModelPlanner:
    def __init__(self, spec: PlannerModelSpec | None = None) -> None:
        self._spec = spec or planner_model_spec()

    async def __call__(self, request: str, context: AgentContext) -> PlanResult:
        model = self._spec.build_model()
        try:
            response = await model.ainvoke(build_planner_messages(request, context))
        except Exception as exc:
            raise PlanGenerationError(f"Planner error: {exc}") from exc
        text = message_text(response)
        if not text.strip():
            raise PlanGenerationError("No text response from planner")
        return parse_plan_output(text)


def get_plan_generator() -> ChatModelPlanner:
    return ChatModelPlanner()
