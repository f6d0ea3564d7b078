from __future__ import annotations

from .errors import (
    GitHubApiError,
    GitStepError,
    InvalidGitHubUrlError,
    NoChangesToCommitError,
    PullRequestsDomainError,
    UnsupportedGitProviderError,
)
from .github import GitHubClient, parse_github_repo
from .service import (
    branch_for_session,
    build_pr_description,
    create_pull_request,
    list_provider_branches,
    list_provider_repositories,
)
from .types import (
    CreatedPullRequest,
    GitBranchListOut,
    GitBranchOut,
    GitRepositoryListOut,
    GitRepositoryOut,
    PullRequestInput,
    PullRequestOut,
)

__all__ = [
    "CreatedPullRequest",
    "GitBranchListOut",
    "GitBranchOut",
    "GitHubApiError",
    "GitHubClient",
    "GitRepositoryListOut",
    "GitRepositoryOut",
    "GitStepError",
    "InvalidGitHubUrlError",
    "NoChangesToCommitError",
    "PullRequestInput",
    "PullRequestOut",
    "PullRequestsDomainError",
    "UnsupportedGitProviderError",
    "branch_for_session",
    "build_pr_description",
    "create_pull_request",
    "list_provider_branches",
    "list_provider_repositories",
    "parse_github_repo",
]
