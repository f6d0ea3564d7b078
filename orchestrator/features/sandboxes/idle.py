"""Idle-pause policy hook.

Disabled unless `SANDBOX_IDLE_PAUSE_AFTER_SECONDS` is set; the application
lifespan then runs `run_idle_sweeper` in the background.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orchestrator.db.models import Sandbox

from . import repo
from .service import SandboxLifecycleManager, get_sandbox_manager

logger = logging.getLogger(__name__)


async def find_idle_sandboxes(db: AsyncSession, *, idle_after: timedelta) -> list[Sandbox]:
    cutoff = datetime.now(timezone.utc) - idle_after
    return await repo.list_idle_sandboxes(db, cutoff=cutoff)


async def pause_idle_sandboxes(
    db: AsyncSession,
    *,
    idle_after: timedelta,
    manager: SandboxLifecycleManager | None = None,
) -> int:
    manager = manager or get_sandbox_manager()
    paused = 0
    for sandbox in await find_idle_sandboxes(db, idle_after=idle_after):
        await manager.pause(db, sandbox=sandbox)
        paused += 1
    if paused:
        logger.info("Paused %s idle sandboxes", paused)
    return paused


async def run_idle_sweeper(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    idle_after: timedelta,
    interval: float,
    manager: SandboxLifecycleManager | None = None,
) -> None:
    while True:
        try:
            async with session_factory() as db:
                await pause_idle_sandboxes(db, idle_after=idle_after, manager=manager)
        except Exception:
            logger.exception("Idle sandbox sweep failed")
        await asyncio.sleep(max(1.0, interval))
