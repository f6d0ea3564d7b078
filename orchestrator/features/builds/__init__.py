from __future__ import annotations

from .channel import EventChannel
from .errors import BuildInProgressError, BuildsDomainError, BuildValidationError
from .orchestrator import BuildOrchestrator, BuildStream, get_build_orchestrator
from .prompts import build_chat_prompt, build_execution_prompt
from .service import prepare_build, prepare_chat, start_build, start_chat
from .types import NDJSON_MEDIA_TYPE, BuildTarget

__all__ = [
    "BuildInProgressError",
    "BuildOrchestrator",
    "BuildStream",
    "BuildTarget",
    "BuildValidationError",
    "BuildsDomainError",
    "EventChannel",
    "NDJSON_MEDIA_TYPE",
    "build_chat_prompt",
    "build_execution_prompt",
    "get_build_orchestrator",
    "prepare_build",
    "prepare_chat",
    "start_build",
    "start_chat",
]
