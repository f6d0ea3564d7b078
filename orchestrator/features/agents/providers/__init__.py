from __future__ import annotations

from .base import AgentProvider
from .claude_sdk import ClaudeAgentSdkProvider
from .opencode import OpenCodeAgentProvider, iter_sse_events

__all__ = [
    "AgentProvider",
    "ClaudeAgentSdkProvider",
    "OpenCodeAgentProvider",
    "iter_sse_events",
]
