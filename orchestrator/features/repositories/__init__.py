from __future__ import annotations

from .errors import (
    GitConnectionMissingError,
    RepositoriesDomainError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from .service import (
    build_agent_context,
    create_repository,
    find_git_connection,
    get_repository,
    list_repositories,
    load_repository,
    parse_context,
    require_git_connection,
)
from .types import AgentContext, RepositoryContext, RepositoryCreateInput, RepositoryDetail

__all__ = [
    "AgentContext",
    "GitConnectionMissingError",
    "RepositoriesDomainError",
    "RepositoryContext",
    "RepositoryCreateInput",
    "RepositoryDetail",
    "RepositoryNotFoundError",
    "RepositoryValidationError",
    "build_agent_context",
    "create_repository",
    "find_git_connection",
    "get_repository",
    "list_repositories",
    "load_repository",
    "parse_context",
    "require_git_connection",
]
