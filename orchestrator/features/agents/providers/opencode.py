"""OpenCode backend: a REST coding agent served from inside the sandbox."""
from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from orchestrator.features.agents.classifier import classify_message_text
from orchestrator.features.agents.errors import AgentBackendError
from orchestrator.features.agents.registry import AgentSessionRegistry, RegistryEntry
from orchestrator.features.agents.types import (
    AgentProviderKind,
    AgentSession,
    AgentStreamEvent,
    CreateAgentSessionOptions,
    SendAgentMessageOptions,
)

from .base import AgentProvider

logger = logging.getLogger(__name__)

PreviewUrlResolver = Callable[[str, str | None], Awaitable[str]]

_SSE_DATA_PREFIX = "data:"
_SSE_DONE = "[DONE]"


def _parse_created_at(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode `data:` lines into JSON objects; `[DONE]` becomes a `done` event."""
    async for raw_line in lines:
        line = raw_line.strip()
        if not line.startswith(_SSE_DATA_PREFIX):
            continue
        data = line[len(_SSE_DATA_PREFIX) :].strip()
        if data == _SSE_DONE:
            yield {"type": "done", "data": {}}
            return
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed OpenCode SSE payload: %s", data[:200])
            continue
        if isinstance(payload, dict):
            yield payload


class OpenCodeAgentProvider(AgentProvider):
    kind = AgentProviderKind.OPENCODE
    name = "OpenCode"

    def __init__(
        self,
        registry: AgentSessionRegistry,
        *,
        resolve_preview_url: PreviewUrlResolver,
        port: int = 8080,
        default_model: str = "claude-sonnet-4-20250514",
        timeout: float = 30.0,
        stream_timeout: float = 1800.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(registry)
        self._resolve_preview_url = resolve_preview_url
        self._port = port
        self._default_model = default_model
        self._timeout = timeout
        self._stream_timeout = stream_timeout
        self._transport = transport

    def _base_url(self, preview_url: str) -> str:
        return f"{preview_url.rstrip('/')}:{self._port}"

    async def _preview_url(
        self,
        workspace_id: str,
        known: str | None = None,
        *,
        sandbox_kind: str | None = None,
    ) -> str:
        return known or await self._resolve_preview_url(workspace_id, sandbox_kind)

    def _client(self, base_url: str, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout or self._timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        base_url: str,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            async with self._client(base_url) as client:
                response = await client.request(method, path, json=body)
                response.raise_for_status()
                if not response.content:
                    return {}
                payload = response.json()
                return payload if isinstance(payload, dict) else {}
        except httpx.HTTPStatusError as exc:
            raise AgentBackendError(
                f"OpenCode API error: {exc.response.status_code} - {exc.response.text[:500]}",
                upstream_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise AgentBackendError(f"OpenCode API unreachable: {exc}") from exc

    async def create_session(self, options: CreateAgentSessionOptions) -> AgentSession:
        preview_url = await self._preview_url(
            options.workspace_id, options.preview_url, sandbox_kind=options.sandbox_kind
        )
        base_url = self._base_url(preview_url)
        payload = await self._request(
            base_url,
            "POST",
            "/session",
            body={
                "model": options.model or self._default_model,
                "systemPrompt": options.system_prompt,
                "skills": list(options.skills),
            },
        )
        native_id = payload.get("id")
        if not isinstance(native_id, str) or not native_id:
            raise AgentBackendError("OpenCode /session response missing session id")

        session = AgentSession(
            session_id=options.session_id,
            native_id=native_id,
            provider=self.kind,
            workspace_id=options.workspace_id,
            sandbox_kind=options.sandbox_kind,
            status=payload.get("status") if payload.get("status") in {"idle", "busy", "error"} else "idle",
            created_at=_parse_created_at(payload.get("createdAt")),
        )
        self.registry.insert(session)
        logger.info("Created OpenCode session %s for %s", native_id, options.session_id)
        return session

    async def get_session(self, session_id: str, workspace_id: str) -> AgentSession | None:
        entry = self.registry.get(session_id, provider=self.kind)
        if entry is None:
            return None
        try:
            base_url = self._base_url(
                await self._preview_url(workspace_id, sandbox_kind=entry.session.sandbox_kind)
            )
            payload = await self._request(base_url, "GET", f"/session/{entry.session.native_id}")
        except AgentBackendError:
            logger.warning("Could not read OpenCode session %s", entry.session.native_id, exc_info=True)
            return None
        status = payload.get("status")
        if status in {"idle", "busy", "error"}:
            entry.session.status = status
        return entry.session

    async def _stream(
        self,
        entry: RegistryEntry,
        options: SendAgentMessageOptions,
    ) -> AsyncIterator[AgentStreamEvent]:
        preview_url = await self._preview_url(
            options.workspace_id, options.preview_url, sandbox_kind=entry.session.sandbox_kind
        )
        yield AgentStreamEvent(type="preview_url", content=preview_url)

        path = f"/session/{entry.session.native_id}/message"
        async with self._client(self._base_url(preview_url), self._stream_timeout) as client:
            async with client.stream(
                "POST",
                path,
                json={"content": options.content},
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise AgentBackendError(
                        f"OpenCode API error: {response.status_code} - {detail[:500]}",
                        upstream_status=response.status_code,
                    )
                async for native in iter_sse_events(response.aiter_lines()):
                    event = self.transform_event(native)
                    if event is not None:
                        yield event

    def transform_event(self, native: Any) -> AgentStreamEvent | None:
        if not isinstance(native, dict):
            return AgentStreamEvent(type="message", content=json.dumps(native, default=str))
        event_type = native.get("type")
        data = native.get("data") if isinstance(native.get("data"), dict) else {}
        tool_call = data.get("toolCall") if isinstance(data.get("toolCall"), dict) else None

        if event_type == "message":
            content = str(data.get("content") or "")
            return AgentStreamEvent(
                type=classify_message_text(content),
                content=content,
                message_id=data.get("messageId"),
            )
        if event_type == "tool_call":
            tool_name = (tool_call or {}).get("name") or "unknown"
            return AgentStreamEvent(
                type="tool_use",
                content=f"Using tool: {tool_name}",
                metadata={"toolCall": tool_call} if tool_call else None,
            )
        if event_type == "tool_result":
            return AgentStreamEvent(
                type="tool_result",
                content=str((tool_call or {}).get("result") or ""),
                metadata={"toolCall": tool_call} if tool_call else None,
            )
        if event_type == "error":
            return AgentStreamEvent(type="error", content=str(data.get("error") or "Unknown error"))
        if event_type == "done":
            return AgentStreamEvent(type="done", content="Completed", message_id=data.get("messageId"))
        return AgentStreamEvent(type="message", content=json.dumps(data, default=str))

    async def _cancel_remote(self, entry: RegistryEntry) -> None:
        base_url = self._base_url(
            await self._preview_url(entry.session.workspace_id, sandbox_kind=entry.session.sandbox_kind)
        )
        await self._request(base_url, "POST", f"/session/{entry.session.native_id}/cancel")

    async def _delete_remote(self, entry: RegistryEntry) -> None:
        base_url = self._base_url(
            await self._preview_url(entry.session.workspace_id, sandbox_kind=entry.session.sandbox_kind)
        )
        await self._request(base_url, "DELETE", f"/session/{entry.session.native_id}")
