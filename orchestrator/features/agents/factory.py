from __future__ import annotations

from collections.abc import Callable, Iterable

from orchestrator.core.config import Settings, get_settings
from orchestrator.features.sandboxes import get_sandbox_provider

from .errors import AgentProviderDisabledError, UnknownAgentProviderError
from .providers import AgentProvider, ClaudeAgentSdkProvider, OpenCodeAgentProvider
from .registry import AgentSessionRegistry
from .types import AgentProviderKind

ProviderBuilder = Callable[[AgentSessionRegistry, Settings], AgentProvider]


async def _sandbox_preview_url(workspace_id: str, sandbox_kind: str | None = None) -> str:
    return await get_sandbox_provider(sandbox_kind).get_preview_url(
        workspace_id,
        get_settings().sandbox_preview_port,
    )


def _build_opencode(registry: AgentSessionRegistry, settings: Settings) -> AgentProvider:
    return OpenCodeAgentProvider(
        registry,
        resolve_preview_url=_sandbox_preview_url,
        port=settings.opencode_port,
        default_model=settings.agent_default_model,
        timeout=settings.agent_request_timeout_seconds,
        stream_timeout=settings.build_stream_timeout_seconds,
    )


def _build_claude_sdk(registry: AgentSessionRegistry, settings: Settings) -> AgentProvider:
    return ClaudeAgentSdkProvider(
        registry,
        resolve_sandbox_provider=get_sandbox_provider,
        repo_dir=settings.sandbox_repo_dir,
        preview_port=settings.sandbox_preview_port,
        default_model=settings.agent_default_model,
        stream_timeout=settings.build_stream_timeout_seconds,
    )


DEFAULT_BUILDERS: dict[AgentProviderKind, ProviderBuilder] = {
    AgentProviderKind.OPENCODE: _build_opencode,
    AgentProviderKind.CLAUDE_AGENT_SDK: _build_claude_sdk,
}


class AgentProviderFactory:
    """Resolves agent backends by kind; every provider shares one session registry."""

    def __init__(
        self,
        registry: AgentSessionRegistry,
        *,
        settings: Settings | None = None,
        builders: dict[AgentProviderKind, ProviderBuilder] | None = None,
        disabled: Iterable[str] | None = None,
        default: str | None = None,
    ) -> None:
        self.registry = registry
        self._settings = settings or get_settings()
        self._builders = dict(builders or DEFAULT_BUILDERS)
        self._disabled = set(disabled if disabled is not None else self._settings.disabled_agent_providers)
        self._default = default or self._settings.agent_provider
        self._providers: dict[AgentProviderKind, AgentProvider] = {}

    @property
    def default_kind(self) -> str:
        return self._default

    def _parse_kind(self, kind: AgentProviderKind | str) -> AgentProviderKind:
        if isinstance(kind, AgentProviderKind):
            return kind
        try:
            return AgentProviderKind(str(kind).strip().lower())
        except ValueError as exc:
            raise UnknownAgentProviderError(str(kind)) from exc

    def is_enabled(self, kind: AgentProviderKind | str) -> bool:
        parsed = self._parse_kind(kind)
        return parsed in self._builders and parsed.value not in self._disabled

    def get(self, kind: AgentProviderKind | str | None = None) -> AgentProvider:
        parsed = self._parse_kind(kind or self._default)
        if parsed not in self._builders:
            raise UnknownAgentProviderError(parsed.value)
        if parsed.value in self._disabled:
            raise AgentProviderDisabledError(parsed.value)
        provider = self._providers.get(parsed)
        if provider is None:
            provider = self._builders[parsed](self.registry, self._settings)
            self._providers[parsed] = provider
        return provider

    def available(self) -> list[AgentProvider]:
        return [self.get(kind) for kind in self._builders if kind.value not in self._disabled]
