from __future__ import annotations

from orchestrator.features.shared.errors import NotFoundError


class SkillsDomainError(Exception):
    """Base exception for skill lookups."""


class SkillNotFoundError(SkillsDomainError, NotFoundError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__("Skill not found")
