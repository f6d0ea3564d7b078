from __future__ import annotations

from .classifier import classify_message_text
from .errors import (
    AgentBackendError,
    AgentProviderDisabledError,
    AgentSandboxRequiredError,
    AgentSessionNotFoundError,
    AgentsDomainError,
    AgentWorkspaceNotFoundError,
    UnknownAgentProviderError,
)
from .factory import AgentProviderFactory
from .providers import AgentProvider, ClaudeAgentSdkProvider, OpenCodeAgentProvider
from .registry import AgentSessionRegistry, RegistryEntry
from .service import (
    ensure_agent_session,
    get_agent_provider_factory,
    get_agent_registry,
    release_agent_session,
    shutdown_agent_sessions,
    skill_slugs_for,
)
from .types import (
    AgentProviderKind,
    AgentSession,
    AgentStreamEvent,
    CreateAgentSessionOptions,
    SendAgentMessageOptions,
    encode_ndjson,
)

__all__ = [
    "AgentBackendError",
    "AgentProvider",
    "AgentProviderDisabledError",
    "AgentProviderFactory",
    "AgentProviderKind",
    "AgentSandboxRequiredError",
    "AgentSession",
    "AgentSessionNotFoundError",
    "AgentSessionRegistry",
    "AgentStreamEvent",
    "AgentWorkspaceNotFoundError",
    "AgentsDomainError",
    "ClaudeAgentSdkProvider",
    "CreateAgentSessionOptions",
    "OpenCodeAgentProvider",
    "RegistryEntry",
    "SendAgentMessageOptions",
    "UnknownAgentProviderError",
    "classify_message_text",
    "encode_ndjson",
    "ensure_agent_session",
    "get_agent_provider_factory",
    "get_agent_registry",
    "release_agent_session",
    "shutdown_agent_sessions",
    "skill_slugs_for",
]
