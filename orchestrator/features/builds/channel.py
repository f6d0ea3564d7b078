from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from orchestrator.features.agents import AgentStreamEvent


class EventChannel:
    """Single-producer, single-consumer event queue that either end can close.

    The producer checks `closed` (or the result of `send`) before each remote
    call and stops once the consumer has gone away. `finish` is the producer's
    end-of-stream marker; `close` is the consumer's.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[AgentStreamEvent | None] = asyncio.Queue(maxsize)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: AgentStreamEvent) -> bool:
        if self._closed or self._finished:
            return False
        await self._queue.put(event)
        return True

    async def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if not self._closed:
            await self._queue.put(None)

    def close(self) -> None:
        self._closed = True

    async def __aiter__(self) -> AsyncIterator[AgentStreamEvent]:
        while not self._closed:
            event = await self._queue.get()
            if event is None:
                return
            yield event
