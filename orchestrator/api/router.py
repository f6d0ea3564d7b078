from fastapi import APIRouter

from orchestrator.features.agents.api import router as agents_router
from orchestrator.features.builds.api import router as builds_router
from orchestrator.features.checkpoints.api import router as checkpoints_router
from orchestrator.features.planning.api import router as planning_router
from orchestrator.features.pull_requests.api import git_router
from orchestrator.features.pull_requests.api import router as pull_requests_router
from orchestrator.features.repositories.api import router as repositories_router
from orchestrator.features.sandboxes.api import router as sandboxes_router
from orchestrator.features.sessions.api import router as sessions_router
from orchestrator.features.skills.api import router as skills_router
from orchestrator.features.transcript.api import router as transcript_router

api_router = APIRouter()
api_router.include_router(repositories_router)
api_router.include_router(sessions_router)
api_router.include_router(transcript_router)
api_router.include_router(sandboxes_router)
api_router.include_router(agents_router)
api_router.include_router(skills_router)
api_router.include_router(planning_router)
api_router.include_router(builds_router)
api_router.include_router(checkpoints_router)
api_router.include_router(pull_requests_router)
api_router.include_router(git_router)
