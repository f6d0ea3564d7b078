from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from orchestrator.features.shared.auth import RequestActor, get_request_actor
from orchestrator.features.shared.errors import OrchestrationError, to_http_exception

from .service import get_skill, list_skills
from .types import Skill, SkillListOut

router = APIRouter(prefix="/api/skills", tags=["skills"])


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, OrchestrationError):
        raise to_http_exception(exc) from exc
    raise exc


@router.get("", response_model=SkillListOut)
async def get_skills(_: RequestActor = Depends(get_request_actor)) -> SkillListOut:
    return SkillListOut(skills=list_skills())


@router.get("/{slug}", response_model=Skill)
async def get_skill_by_slug(
    slug: str,
    _: RequestActor = Depends(get_request_actor),
) -> Skill:
    try:
        return get_skill(slug)
    except Exception as exc:
        _raise_http_error(exc)
