from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .types import AgentProviderKind, AgentSession

logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    session: AgentSession
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class AgentSessionRegistry:
    """Orchestration session id -> live backend handle.

    Entries are inserted by `AgentProvider.create_session` and removed by
    `delete_session`, `cancel_operation` or `release_all` at shutdown. Removing
    an entry trips its cancel signal so any stream still holding it stops.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def get(
        self,
        session_id: str,
        *,
        provider: AgentProviderKind | None = None,
    ) -> RegistryEntry | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if provider is not None and entry.session.provider != provider:
            return None
        return entry

    def insert(self, session: AgentSession) -> RegistryEntry:
        previous = self._entries.get(session.session_id)
        if previous is not None:
            previous.cancel_event.set()
        entry = RegistryEntry(session=session)
        self._entries[session.session_id] = entry
        return entry

    def remove(self, session_id: str) -> RegistryEntry | None:
        entry = self._entries.pop(session_id, None)
        if entry is not None:
            entry.cancel_event.set()
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        return entry

    def release_all(self) -> int:
        released = 0
        for session_id in list(self._entries):
            if self.remove(session_id) is not None:
                released += 1
        self._locks.clear()
        if released:
            logger.info("Released %s agent sessions", released)
        return released
