"""Drives one build or chat turn from the agent backend to the HTTP stream.

Each run is a producer task feeding an `EventChannel` that the response
consumes. Whatever happens (backend error, exception, missing terminal event,
timeout, consumer disconnect) the transcript keeps the partial output, the
session leaves `building`, and the consumer sees exactly one terminal event
if it is still listening.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.core.config import get_settings
from orchestrator.db.session import AsyncSessionLocal
from orchestrator.features.agents import (
    AgentProvider,
    AgentProviderFactory,
    AgentStreamEvent,
    SendAgentMessageOptions,
    ensure_agent_session,
    get_agent_provider_factory,
)
from orchestrator.features.agents.types import TRANSCRIPT_EVENT_TYPES
from orchestrator.features.checkpoints import CheckpointType, record_checkpoint
from orchestrator.features.sandboxes import SandboxLifecycleManager, get_sandbox_manager
from orchestrator.features.sessions.errors import SessionPreconditionError
from orchestrator.features.sessions.service import load_session, transition_session
from orchestrator.features.sessions.state_machine import SessionTrigger
from orchestrator.features.transcript import MessagePhase, MessageRole, append_message

from .channel import EventChannel
from .errors import BuildInProgressError
from .types import BuildTarget

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

_MISSING_TERMINAL = "Agent stream ended without a terminal event"


def _already_announced(event: AgentStreamEvent, target: BuildTarget) -> bool:
    """The run's own `start` frame already carries the start and the known preview URL."""
    if event.type == "start":
        return True
    return event.type == "preview_url" and bool(target.preview_url) and event.content == target.preview_url


@dataclass
class _BuildRun:
    target: BuildTarget
    transcript: list[str] = field(default_factory=list)
    provider: AgentProvider | None = None
    settled: bool = False
    transcript_saved: bool = False

    @property
    def session_key(self) -> str:
        return str(self.target.session_id)

    def transcript_text(self) -> str:
        return "\n\n".join(part for part in self.transcript if part.strip())


class BuildStream:
    """The event stream of one claimed run.

    Closing it before the first event still releases the session's stream
    slot and fails the pending build, which a bare async generator cannot do
    because its body never ran.
    """

    def __init__(self, orchestrator: BuildOrchestrator, target: BuildTarget, events: AsyncIterator[AgentStreamEvent]):
        self._orchestrator = orchestrator
        self._target = target
        self._events = events
        self._started = False
        self._closed = False

    def __aiter__(self) -> BuildStream:
        return self

    async def __anext__(self) -> AgentStreamEvent:
        if self._closed:
            raise StopAsyncIteration
        self._started = True
        return await self._events.__anext__()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._started:
            await self._events.aclose()
            return
        await self._orchestrator._discard(self._target)


class BuildOrchestrator:
    def __init__(
        self,
        *,
        session_factory: SessionFactory = AsyncSessionLocal,
        factory: AgentProviderFactory | None = None,
        manager: SandboxLifecycleManager | None = None,
        stream_timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._factory = factory or get_agent_provider_factory()
        self._manager = manager or get_sandbox_manager()
        self._stream_timeout = (
            stream_timeout if stream_timeout is not None else get_settings().build_stream_timeout_seconds
        )
        self._active: set[str] = set()

    def claim(self, session_id: UUID | str) -> None:
        """Reserve the session's single stream slot; released when the stream ends."""
        key = str(session_id)
        if key in self._active:
            raise BuildInProgressError(key)
        self._active.add(key)

    def release(self, session_id: UUID | str) -> None:
        self._active.discard(str(session_id))

    def is_streaming(self, session_id: UUID | str) -> bool:
        return str(session_id) in self._active

    def execute_plan(self, target: BuildTarget) -> BuildStream:
        return BuildStream(self, target, self._stream(target, start_text="Starting build..."))

    def execute_chat(self, target: BuildTarget) -> BuildStream:
        return BuildStream(self, target, self._stream(target, start_text="Processing your message..."))

    async def _discard(self, target: BuildTarget) -> None:
        logger.info("Build stream for session %s closed before it started", target.session_id)
        try:
            async with self._session_factory() as db:
                await self._settle_failure(db, _BuildRun(target=target), "Operation cancelled")
        finally:
            self.release(target.session_id)

    async def _stream(self, target: BuildTarget, *, start_text: str) -> AsyncIterator[AgentStreamEvent]:
        channel = EventChannel()
        run = _BuildRun(target=target)
        producer_task = asyncio.create_task(self._produce(run, channel, start_text))
        try:
            async for event in channel:
                yield event
        finally:
            channel.close()
            if not producer_task.done():
                producer_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer_task
            self.release(target.session_id)

    async def _produce(self, run: _BuildRun, channel: EventChannel, start_text: str) -> None:
        try:
            preview = {"previewUrl": run.target.preview_url} if run.target.preview_url else None
            await channel.send(AgentStreamEvent(type="start", content=start_text, metadata=preview))
            async with self._session_factory() as db:
                terminal = await self._relay(db, run, channel)
                if terminal is None:
                    # Consumer went away mid-stream.
                    await self._abandon(db, run)
                    return
                await channel.send(terminal)
        except asyncio.CancelledError:
            if not run.settled:
                async with self._session_factory() as db:
                    await self._abandon(db, run)
            raise
        finally:
            await channel.finish()

    async def _relay(
        self,
        db: AsyncSession,
        run: _BuildRun,
        channel: EventChannel,
    ) -> AgentStreamEvent | None:
        """Forward backend events; return the terminal event to emit, or None on disconnect."""
        target = run.target
        outcome: AgentStreamEvent | None = None
        try:
            session_row = await load_session(db, session_id=target.session_id)
            sandbox = await self._manager.get_sandbox(db, sandbox_id=target.sandbox_id)
            run.provider, _ = await ensure_agent_session(
                db,
                session_row=session_row,
                sandbox=sandbox,
                factory=self._factory,
                provider_kind=target.provider_kind,
                skills=target.skills,
            )
            options = SendAgentMessageOptions(
                session_id=run.session_key,
                workspace_id=target.workspace_id,
                content=target.prompt,
                preview_url=target.preview_url,
            )
            async with asyncio.timeout(self._stream_timeout):
                async with contextlib.aclosing(run.provider.send_message(options)) as events:
                    async for event in events:
                        if _already_announced(event, target):
                            continue
                        if event.type in TRANSCRIPT_EVENT_TYPES and event.content:
                            run.transcript.append(event.content)
                        if event.is_terminal:
                            outcome = event
                            break
                        if not await channel.send(event):
                            return None
        except TimeoutError:
            logger.warning("Build stream for session %s timed out", target.session_id)
            await self._cancel_remote(run)
            outcome = AgentStreamEvent(
                type="error",
                content=f"Build timed out after {self._stream_timeout:g} seconds",
            )
        except Exception as exc:
            logger.warning("Build stream for session %s failed", target.session_id, exc_info=True)
            outcome = AgentStreamEvent(type="error", content=str(exc) or "Unknown error")

        if channel.closed:
            return None
        if outcome is None:
            outcome = AgentStreamEvent(type="error", content=_MISSING_TERMINAL)
        if outcome.type == "done":
            return await self._complete(db, run)
        return await self._fail(db, run, outcome.content or "Unknown error")

    async def _complete(self, db: AsyncSession, run: _BuildRun) -> AgentStreamEvent:
        target = run.target
        try:
            content = run.transcript_text() or (
                "Build completed." if target.mode == "build" else "Done."
            )
            message = await append_message(
                db,
                session_id=target.session_id,
                role=MessageRole.ASSISTANT,
                content=content,
                phase=MessagePhase.BUILDING,
                metadata={"type": "build_complete", "mode": target.mode},
            )
            run.transcript_saved = True
            metadata: dict[str, str] = {}
            if target.mode == "build":
                checkpoint_id = await self._auto_checkpoint(db, run)
                if checkpoint_id:
                    metadata["checkpointId"] = checkpoint_id
            await self._manager.touch(db, sandbox_id=target.sandbox_id)
            session_row = await load_session(db, session_id=target.session_id)
            trigger = (
                SessionTrigger.BUILD_COMPLETED if target.mode == "build" else SessionTrigger.CHAT_COMPLETED
            )
            session_row = await transition_session(db, row=session_row, trigger=trigger)
        except Exception as exc:
            logger.exception("Could not record completion of session %s", target.session_id)
            return await self._fail(db, run, f"Build finished but could not be recorded: {exc}")

        run.settled = True
        metadata["status"] = session_row.status
        return AgentStreamEvent(
            type="done",
            content="Build complete" if target.mode == "build" else "Completed",
            metadata=metadata,
            message_id=str(message.id),
        )

    async def _auto_checkpoint(self, db: AsyncSession, run: _BuildRun) -> str | None:
        target = run.target
        label = f"Build: {(target.summary or 'changes')[:50]}"
        try:
            sandbox = await self._manager.get_sandbox(db, sandbox_id=target.sandbox_id)
            checkpoint = await record_checkpoint(
                db,
                sandbox=sandbox,
                manager=self._manager,
                label=label,
                session_id=target.session_id,
                checkpoint_type=CheckpointType.AUTOMATIC,
            )
        except Exception:
            logger.warning("Automatic checkpoint failed for session %s", target.session_id, exc_info=True)
            return None
        return str(checkpoint.id)

    async def _fail(self, db: AsyncSession, run: _BuildRun, error: str) -> AgentStreamEvent:
        await self._settle_failure(db, run, error)
        return AgentStreamEvent(type="error", content=error)

    async def _abandon(self, db: AsyncSession, run: _BuildRun) -> None:
        logger.info("Consumer left build stream for session %s", run.target.session_id)
        await self._cancel_remote(run)
        await self._settle_failure(db, run, "Operation cancelled")

    async def _settle_failure(self, db: AsyncSession, run: _BuildRun, error: str) -> None:
        if run.settled:
            return
        run.settled = True
        target = run.target
        try:
            partial = run.transcript_text()
            if partial and not run.transcript_saved:
                await append_message(
                    db,
                    session_id=target.session_id,
                    role=MessageRole.ASSISTANT,
                    content=partial,
                    phase=MessagePhase.BUILDING,
                    metadata={"type": "build_failed", "mode": target.mode, "error": error},
                )
            session_row = await load_session(db, session_id=target.session_id)
            await transition_session(db, row=session_row, trigger=SessionTrigger.BUILD_FAILED)
        except SessionPreconditionError:
            logger.warning("Session %s already left building", target.session_id)
        except Exception:
            # The stream still has to end with its terminal event.
            logger.exception("Could not record failure of session %s", target.session_id)

    async def _cancel_remote(self, run: _BuildRun) -> None:
        if run.provider is None:
            return
        await run.provider.cancel_operation(run.session_key, run.target.workspace_id)


_orchestrator: BuildOrchestrator | None = None
_orchestrator_lock = threading.Lock()


def get_build_orchestrator() -> BuildOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        with _orchestrator_lock:
            if _orchestrator is None:
                _orchestrator = BuildOrchestrator()
    return _orchestrator
