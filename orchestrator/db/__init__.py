from .base import Base
from .models import (
    Approval,
    Checkpoint,
    FeatureSession,
    GitConnection,
    Message,
    Repository,
    Sandbox,
)

__all__ = [
    "Base",
    "Approval",
    "Checkpoint",
    "FeatureSession",
    "GitConnection",
    "Message",
    "Repository",
    "Sandbox",
]
