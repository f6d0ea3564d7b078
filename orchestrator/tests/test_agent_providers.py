from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from orchestrator.features.agents import AgentSessionRegistry, AgentStreamEvent, encode_ndjson
from orchestrator.features.agents.errors import AgentBackendError
from orchestrator.features.agents.providers import AgentProvider, OpenCodeAgentProvider
from orchestrator.features.agents.types import (
    AgentProviderKind,
    AgentSession,
    CreateAgentSessionOptions,
    SendAgentMessageOptions,
)

_BLOCK = object()


class _ScriptedProvider(AgentProvider):
    kind = AgentProviderKind.OPENCODE
    name = "Scripted"

    def __init__(self, registry, script):
        super().__init__(registry)
        self.script = script

    async def create_session(self, options):
        session = AgentSession(
            session_id=options.session_id,
            native_id="native",
            provider=self.kind,
            workspace_id=options.workspace_id,
        )
        self.registry.insert(session)
        return session

    async def get_session(self, session_id, workspace_id):
        return None

    def transform_event(self, native):
        return native

    async def _stream(self, entry, options):
        for item in self.script:
            if item is _BLOCK:
                await asyncio.Event().wait()
            if isinstance(item, Exception):
                raise item
            yield item


def _options(session_id: str = "s-1") -> SendAgentMessageOptions:
    return SendAgentMessageOptions(session_id=session_id, workspace_id="ws-1", content="go")


async def _open(provider: AgentProvider, session_id: str = "s-1") -> None:
    await provider.create_session(
        CreateAgentSessionOptions(session_id=session_id, sandbox_id="sb-1", workspace_id="ws-1")
    )


def _drain(provider: AgentProvider, *, open_session: bool = True) -> list[AgentStreamEvent]:
    async def _scenario():
        if open_session:
            await _open(provider)
        return [event async for event in provider.send_message(_options())]

    return asyncio.run(_scenario())


@pytest.mark.parametrize(
    ("script", "expected_types", "last_content"),
    [
        ([AgentStreamEvent(type="progress", content="a"), AgentStreamEvent(type="done")], ["progress", "done"], ""),
        ([AgentStreamEvent(type="progress", content="a")], ["progress", "error"], "Agent stream ended without a terminal event"),
        ([AgentStreamEvent(type="progress", content="a"), RuntimeError("boom")], ["progress", "error"], "boom"),
        ([AgentStreamEvent(type="error", content="bad"), AgentStreamEvent(type="progress")], ["error"], "bad"),
        ([AgentStreamEvent(type="done"), AgentStreamEvent(type="message", content="late")], ["done"], ""),
        ([], ["error"], "Agent stream ended without a terminal event"),
    ],
)
def test_send_message_ends_with_exactly_one_terminal_event(script, expected_types, last_content):
    provider = _ScriptedProvider(AgentSessionRegistry(), script)

    events = _drain(provider)

    assert [event.type for event in events] == expected_types
    assert sum(event.is_terminal for event in events) == 1
    assert events[-1].content == last_content


def test_send_message_for_unknown_session_yields_error():
    provider = _ScriptedProvider(AgentSessionRegistry(), [AgentStreamEvent(type="done")])

    events = _drain(provider, open_session=False)

    assert [(event.type, event.content) for event in events] == [("error", "Session not found")]


def test_cancel_operation_stops_in_flight_stream():
    registry = AgentSessionRegistry()
    provider = _ScriptedProvider(registry, [AgentStreamEvent(type="progress", content="a"), _BLOCK])

    async def _scenario():
        await _open(provider)
        stream = provider.send_message(_options())
        first = await stream.__anext__()
        await provider.cancel_operation("s-1", "ws-1")
        rest = [event async for event in stream]
        return [first, *rest]

    events = asyncio.run(_scenario())

    assert [event.type for event in events] == ["progress", "error"]
    assert events[-1].content == "Operation cancelled"
    assert "s-1" not in registry


def test_registry_replacement_trips_previous_cancel_signal():
    registry = AgentSessionRegistry()
    first = registry.insert(AgentSession(session_id="s-1", native_id="a", provider=AgentProviderKind.OPENCODE, workspace_id="ws"))
    second = registry.insert(AgentSession(session_id="s-1", native_id="b", provider=AgentProviderKind.OPENCODE, workspace_id="ws"))

    assert first.cancelled
    assert not second.cancelled
    assert registry.get("s-1", provider=AgentProviderKind.CLAUDE_AGENT_SDK) is None
    assert registry.release_all() == 1
    assert second.cancelled
    assert len(registry) == 0


def test_encode_ndjson_uses_camel_case_message_id():
    frame = encode_ndjson(AgentStreamEvent(type="done", content="Completed", message_id="m-1"))

    assert frame.endswith(b"\n")
    assert json.loads(frame) == {"type": "done", "content": "Completed", "messageId": "m-1"}


async def _preview(_workspace_id: str, _sandbox_kind: str | None = None) -> str:
    return "http://preview.test"


def _opencode(handler) -> tuple[OpenCodeAgentProvider, AgentSessionRegistry]:
    registry = AgentSessionRegistry()
    provider = OpenCodeAgentProvider(
        registry,
        resolve_preview_url=_preview,
        port=8080,
        transport=httpx.MockTransport(handler),
    )
    return provider, registry


def test_opencode_create_session_and_stream():
    requests: list[tuple[str, str, dict]] = []
    sse = "\n".join(
        [
            'data: {"type": "message", "data": {"content": "Creating the toggle", "messageId": "m-1"}}',
            "",
            'data: {"type": "tool_call", "data": {"toolCall": {"name": "write_file"}}}',
            "",
            "data: not-json",
            "",
            'data: {"type": "done", "data": {"messageId": "m-2"}}',
            "",
        ]
    )

    def _handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        requests.append((request.method, str(request.url), body))
        if request.url.path == "/session":
            return httpx.Response(200, json={"id": "oc-1", "status": "idle"})
        if request.url.path == "/session/oc-1/message":
            return httpx.Response(200, text=sse, headers={"Content-Type": "text/event-stream"})
        return httpx.Response(404)

    provider, registry = _opencode(_handler)

    async def _scenario():
        session = await provider.create_session(
            CreateAgentSessionOptions(
                session_id="s-1",
                sandbox_id="sb-1",
                workspace_id="ws-1",
                model="model-x",
                skills=("react",),
            )
        )
        events = [event async for event in provider.send_message(_options())]
        return session, events

    session, events = asyncio.run(_scenario())

    assert session.native_id == "oc-1"
    assert registry.get("s-1").session is session
    assert requests[0] == (
        "POST",
        "http://preview.test:8080/session",
        {"model": "model-x", "systemPrompt": None, "skills": ["react"]},
    )
    assert requests[1][2] == {"content": "go"}
    assert [event.type for event in events] == ["preview_url", "progress", "tool_use", "done"]
    assert events[1].message_id == "m-1"
    assert events[2].content == "Using tool: write_file"
    assert session.status == "idle"


def test_opencode_http_error_surfaces_as_error_event():
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/session":
            return httpx.Response(200, json={"id": "oc-1"})
        return httpx.Response(500, text="agent crashed")

    provider, _ = _opencode(_handler)
    events = _drain(provider)

    assert [event.type for event in events] == ["preview_url", "error"]
    assert "500" in events[-1].content


def test_opencode_create_session_requires_id():
    provider, registry = _opencode(lambda _request: httpx.Response(200, json={}))

    with pytest.raises(AgentBackendError):
        asyncio.run(_open(provider))

    assert len(registry) == 0


def test_opencode_cancel_calls_remote_endpoint():
    calls: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(f"{request.method} {request.url.path}")
        if request.url.path == "/session":
            return httpx.Response(200, json={"id": "oc-1"})
        return httpx.Response(200, json={})

    provider, registry = _opencode(_handler)

    async def _scenario():
        await _open(provider)
        await provider.cancel_operation("s-1", "ws-1")
        await provider.cancel_operation("s-1", "ws-1")

    asyncio.run(_scenario())

    assert calls == ["POST /session", "POST /session/oc-1/cancel"]
    assert len(registry) == 0
