"""Claude Agent SDK backend: the agent runtime runs in the sandbox's code interpreter."""
from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from orchestrator.features.agents.classifier import classify_message_text
from orchestrator.features.agents.errors import AgentWorkspaceNotFoundError
from orchestrator.features.agents.registry import AgentSessionRegistry, RegistryEntry
from orchestrator.features.agents.types import (
    AgentProviderKind,
    AgentSession,
    AgentStreamEvent,
    CreateAgentSessionOptions,
    SendAgentMessageOptions,
)
from orchestrator.features.sandboxes import SandboxCommandError, SandboxProvider, WorkspaceStatus
from orchestrator.features.sandboxes.agent_runtime import build_query_code

from .base import AgentProvider

logger = logging.getLogger(__name__)

# Resolves the sandbox provider by the sandbox's stored kind; None means the configured default.
SandboxProviderResolver = Callable[[str | None], SandboxProvider]


class ClaudeAgentSdkProvider(AgentProvider):
    kind = AgentProviderKind.CLAUDE_AGENT_SDK
    name = "Claude Agent SDK"

    def __init__(
        self,
        registry: AgentSessionRegistry,
        *,
        resolve_sandbox_provider: SandboxProviderResolver,
        repo_dir: str = "/workspace/repo",
        preview_port: int = 3000,
        default_model: str | None = None,
        stream_timeout: float = 1800.0,
    ) -> None:
        super().__init__(registry)
        self._resolve_sandbox_provider = resolve_sandbox_provider
        self._repo_dir = repo_dir
        self._preview_port = preview_port
        self._default_model = default_model
        self._stream_timeout = stream_timeout
        self._models: dict[str, str | None] = {}

    async def create_session(self, options: CreateAgentSessionOptions) -> AgentSession:
        sandbox = self._resolve_sandbox_provider(options.sandbox_kind)
        workspace = await sandbox.get_workspace(options.workspace_id)
        if workspace is None:
            raise AgentWorkspaceNotFoundError(options.workspace_id)
        if workspace.status != WorkspaceStatus.RUNNING:
            await sandbox.resume_workspace(options.workspace_id)
            await sandbox.prepare_runtime(options.workspace_id)

        session = AgentSession(
            session_id=options.session_id,
            native_id=options.workspace_id,
            provider=self.kind,
            workspace_id=options.workspace_id,
            sandbox_kind=options.sandbox_kind,
        )
        self.registry.insert(session)
        self._models[options.session_id] = options.model or self._default_model
        return session

    async def get_session(self, session_id: str, workspace_id: str) -> AgentSession | None:
        entry = self.registry.get(session_id, provider=self.kind)
        if entry is None:
            return None
        try:
            workspace = await self._resolve_sandbox_provider(entry.session.sandbox_kind).get_workspace(workspace_id)
        except SandboxCommandError:
            logger.warning("Could not read workspace %s", workspace_id, exc_info=True)
            return None
        if workspace is None:
            return None
        if entry.session.status != "busy":
            entry.session.status = "idle" if workspace.status == WorkspaceStatus.RUNNING else "error"
        return entry.session

    async def _stream(
        self,
        entry: RegistryEntry,
        options: SendAgentMessageOptions,
    ) -> AsyncIterator[AgentStreamEvent]:
        sandbox = self._resolve_sandbox_provider(entry.session.sandbox_kind)
        preview_url = options.preview_url
        if not preview_url:
            try:
                preview_url = await sandbox.get_preview_url(options.workspace_id, self._preview_port)
            except SandboxCommandError:
                logger.warning("No preview URL for workspace %s", options.workspace_id, exc_info=True)
                preview_url = None
        if preview_url:
            yield AgentStreamEvent(type="preview_url", content=preview_url)
        yield AgentStreamEvent(type="start", content="Starting agent...")

        code = build_query_code(
            options.content,
            working_directory=self._repo_dir,
            preview_url=preview_url,
            model=self._models.get(options.session_id),
        )
        pending = ""
        async for output in sandbox.run_code(
            options.workspace_id,
            code,
            timeout=self._stream_timeout,
        ):
            if output.type == "stdout":
                pending += output.content
                *lines, pending = pending.split("\n")
                for line in lines:
                    event = self.transform_event(line)
                    if event is not None:
                        yield event
            elif output.type == "stderr":
                logger.debug("Agent stderr (%s): %s", options.workspace_id, output.content[:500])
            elif output.type == "error":
                yield AgentStreamEvent(type="error", content=output.content or "Agent execution failed")
                return
            elif output.type == "done":
                if pending.strip():
                    event = self.transform_event(pending)
                    if event is not None:
                        yield event
                yield AgentStreamEvent(type="done", content="Completed")
                return

    def transform_event(self, native: Any) -> AgentStreamEvent | None:
        if isinstance(native, str):
            line = native.strip()
            if not line:
                return None
            try:
                native = json.loads(line)
            except json.JSONDecodeError:
                return AgentStreamEvent(type="message", content=line)
        if not isinstance(native, dict):
            return AgentStreamEvent(type="message", content=json.dumps(native, default=str))

        message_type = native.get("type")
        content = str(native.get("content") or "")
        metadata = native.get("metadata") if isinstance(native.get("metadata"), dict) else None

        if message_type == "text":
            return AgentStreamEvent(type=classify_message_text(content), content=content)
        if message_type == "thinking":
            return AgentStreamEvent(type="progress", content=content, metadata=metadata)
        if message_type == "result":
            return AgentStreamEvent(type="message", content=content, metadata=metadata)
        if message_type == "tool_use":
            return AgentStreamEvent(type="tool_use", content=content or "Working...", metadata=metadata)
        if message_type == "error":
            return AgentStreamEvent(type="error", content=content or "Unknown error", metadata=metadata)
        if message_type in {"plan", "question", "progress", "message"}:
            return AgentStreamEvent(type=message_type, content=content, metadata=metadata)
        return AgentStreamEvent(type="message", content=content or json.dumps(native, default=str))

    async def _cancel_remote(self, entry: RegistryEntry) -> None:
        # No remote cancel API; the tripped registry signal stops the stream.
        self._models.pop(entry.session.session_id, None)

    async def _delete_remote(self, entry: RegistryEntry) -> None:
        # The workspace is shared by every session on the repository, so it is left running.
        self._models.pop(entry.session.session_id, None)
