from __future__ import annotations

import threading

from orchestrator.core.config import get_settings
from orchestrator.features.sandboxes.errors import (
    SandboxProviderUnavailableError,
    UnknownSandboxProviderError,
)
from orchestrator.features.sandboxes.types import SandboxKind, SandboxProviderInfo

from .base import SandboxProvider
from .daytona import DaytonaSandboxProvider
from .unavailable import UnavailableSandboxProvider

_providers: dict[SandboxKind, SandboxProvider] = {}
_providers_lock = threading.Lock()


def _build_provider(kind: SandboxKind) -> SandboxProvider:
    settings = get_settings()
    if kind == SandboxKind.DAYTONA:
        return DaytonaSandboxProvider(
            api_url=settings.daytona_api_url,
            api_key=settings.daytona_api_key,
            repo_dir=settings.sandbox_repo_dir,
            agent_path=settings.sandbox_agent_path,
            preview_port=settings.sandbox_preview_port,
            command_timeout=settings.sandbox_command_timeout_seconds,
            provision_timeout=settings.sandbox_provision_timeout_seconds,
        )
    if kind == SandboxKind.E2B:
        return UnavailableSandboxProvider(kind, "E2B")
    return UnavailableSandboxProvider(kind, "Modal")


def _parse_kind(kind: SandboxKind | str | None) -> SandboxKind:
    if kind is None:
        kind = get_settings().sandbox_provider
    if isinstance(kind, SandboxKind):
        return kind
    try:
        return SandboxKind(str(kind).strip().lower())
    except ValueError as exc:
        raise UnknownSandboxProviderError(str(kind)) from exc


def _provider_for(kind: SandboxKind) -> SandboxProvider:
    provider = _providers.get(kind)
    if provider is not None:
        return provider
    with _providers_lock:
        provider = _providers.get(kind)
        if provider is None:
            provider = _build_provider(kind)
            _providers[kind] = provider
        return provider


def get_sandbox_provider(kind: SandboxKind | str | None = None) -> SandboxProvider:
    """Resolve a provider instance; `None` means the configured default."""
    provider = _provider_for(_parse_kind(kind))
    if not provider.is_available():
        raise SandboxProviderUnavailableError(provider.kind.value)
    return provider


def list_sandbox_providers() -> list[SandboxProviderInfo]:
    return [
        SandboxProviderInfo(
            kind=kind.value,
            name=_provider_for(kind).name,
            available=_provider_for(kind).is_available(),
        )
        for kind in SandboxKind
    ]


def default_sandbox_kind() -> str:
    return _parse_kind(None).value


def reset_sandbox_providers() -> None:
    with _providers_lock:
        _providers.clear()


__all__ = [
    "DaytonaSandboxProvider",
    "SandboxProvider",
    "UnavailableSandboxProvider",
    "default_sandbox_kind",
    "get_sandbox_provider",
    "list_sandbox_providers",
    "reset_sandbox_providers",
]
