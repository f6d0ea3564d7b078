from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from orchestrator.features.agents.registry import AgentSessionRegistry, RegistryEntry
from orchestrator.features.agents.types import (
    AgentProviderKind,
    AgentSession,
    AgentStreamEvent,
    CreateAgentSessionOptions,
    SendAgentMessageOptions,
)

logger = logging.getLogger(__name__)


async def _anext(iterator: AsyncIterator[AgentStreamEvent]) -> AgentStreamEvent:
    return await iterator.__anext__()


async def _until_cancelled(
    stream: AsyncIterator[AgentStreamEvent],
    cancel_event: asyncio.Event,
) -> AsyncIterator[AgentStreamEvent]:
    """Yield from `stream` until it ends or `cancel_event` is set, whichever comes first."""
    iterator = stream.__aiter__()
    cancel_waiter = asyncio.create_task(cancel_event.wait())
    next_item: asyncio.Task | None = None
    try:
        while True:
            next_item = asyncio.create_task(_anext(iterator))
            done, _ = await asyncio.wait(
                {next_item, cancel_waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if next_item not in done:
                return
            try:
                item = next_item.result()
            except StopAsyncIteration:
                return
            yield item
    finally:
        # The backend stream cannot be closed while a pending read still drives it.
        pending = [task for task in (next_item, cancel_waiter) if task is not None and not task.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                await task


class AgentProvider(ABC):
    """One coding-agent backend.

    Subclasses implement the native calls and `transform_event`; the
    `send_message` template owns the stream contract: exactly one terminal
    event (`done` or `error`), always last, including when the backend raises,
    ends early, or the operation is cancelled.
    """

    kind: AgentProviderKind
    name: str

    def __init__(self, registry: AgentSessionRegistry) -> None:
        self.registry = registry

    @abstractmethod
    async def create_session(self, options: CreateAgentSessionOptions) -> AgentSession:
        ...

    @abstractmethod
    async def get_session(self, session_id: str, workspace_id: str) -> AgentSession | None:
        ...

    @abstractmethod
    def transform_event(self, native: Any) -> AgentStreamEvent | None:
        """Map one backend-native event onto the canonical vocabulary; None drops it."""

    @abstractmethod
    def _stream(
        self,
        entry: RegistryEntry,
        options: SendAgentMessageOptions,
    ) -> AsyncIterator[AgentStreamEvent]:
        ...

    async def _cancel_remote(self, entry: RegistryEntry) -> None:
        return None

    async def _delete_remote(self, entry: RegistryEntry) -> None:
        return None

    async def send_message(self, options: SendAgentMessageOptions) -> AsyncIterator[AgentStreamEvent]:
        entry = self.registry.get(options.session_id, provider=self.kind)
        if entry is None:
            yield AgentStreamEvent(type="error", content="Session not found")
            return

        entry.session.status = "busy"
        terminated = False
        try:
            async with contextlib.aclosing(self._stream(entry, options)) as stream:
                async with contextlib.aclosing(_until_cancelled(stream, entry.cancel_event)) as events:
                    async for event in events:
                        yield event
                        if event.is_terminal:
                            terminated = True
                            break
        except Exception as exc:
            logger.warning("%s stream failed for session %s", self.name, options.session_id, exc_info=True)
            entry.session.status = "error"
            terminated = True
            yield AgentStreamEvent(type="error", content=str(exc) or "Unknown error")
        finally:
            if entry.session.status == "busy":
                entry.session.status = "idle"

        if not terminated:
            if entry.cancelled:
                yield AgentStreamEvent(type="error", content="Operation cancelled")
            else:
                yield AgentStreamEvent(type="error", content="Agent stream ended without a terminal event")

    async def cancel_operation(self, session_id: str, workspace_id: str) -> None:
        """Signal the in-flight stream and release the session; safe to call repeatedly."""
        entry = self.registry.remove(session_id)
        if entry is None:
            return
        try:
            await self._cancel_remote(entry)
        except Exception:
            logger.warning("Remote cancel failed for session %s", session_id, exc_info=True)

    async def delete_session(self, session_id: str, workspace_id: str) -> None:
        entry = self.registry.remove(session_id)
        if entry is None:
            return
        try:
            await self._delete_remote(entry)
        except Exception:
            logger.warning("Remote delete failed for session %s", session_id, exc_info=True)
