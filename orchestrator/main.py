import asyncio
from contextlib import asynccontextmanager, suppress
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.router import api_router
from .core.config import get_settings
from .core.logging_config import configure_logging
from .db.session import AsyncSessionLocal, async_engine
from .features.agents import shutdown_agent_sessions
from .features.sandboxes.idle import run_idle_sweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    sweeper_task: asyncio.Task[None] | None = None
    if settings.sandbox_idle_pause_after_seconds:
        sweeper_task = asyncio.create_task(
            run_idle_sweeper(
                AsyncSessionLocal,
                idle_after=timedelta(seconds=settings.sandbox_idle_pause_after_seconds),
                interval=settings.sandbox_idle_sweep_interval_seconds,
            )
        )
    try:
        yield
    finally:
        if sweeper_task is not None:
            sweeper_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper_task
        shutdown_agent_sessions()
        await async_engine.dispose()


app = FastAPI(title="Session Orchestrator API", docs_url="/api/docs", lifespan=lifespan)
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def read_root() -> dict:
    return {"status": "ok", "service": "orchestrator"}


@app.get("/health")
async def health_check() -> dict:
    return {"healthy": True}
