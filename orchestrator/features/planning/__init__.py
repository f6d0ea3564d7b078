from __future__ import annotations

from .errors import (
    ApprovalConflictError,
    ApprovalNotFoundError,
    PlanGenerationError,
    PlannerUnavailableError,
    PlanningDomainError,
    PlanNotApprovedError,
    PlanValidationError,
)
from .planner import ChatModelPlanner, get_plan_generator, parse_plan_output
from .service import (
    generate_plan,
    get_latest_plan,
    load_approved_plan,
    parse_stored_plan,
    resolve_approval,
)
from .types import (
    ApprovalAction,
    ApprovalStatus,
    PlanChange,
    PlanGenerator,
    PlanResult,
)

__all__ = [
    "ApprovalAction",
    "ApprovalConflictError",
    "ApprovalNotFoundError",
    "ApprovalStatus",
    "ChatModelPlanner",
    "PlanChange",
    "PlanGenerationError",
    "PlanGenerator",
    "PlanNotApprovedError",
    "PlanResult",
    "PlanValidationError",
    "PlannerUnavailableError",
    "PlanningDomainError",
    "generate_plan",
    "get_latest_plan",
    "get_plan_generator",
    "load_approved_plan",
    "parse_plan_output",
    "parse_stored_plan",
    "resolve_approval",
]
