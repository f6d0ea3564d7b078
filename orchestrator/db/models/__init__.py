from .checkpoints import Checkpoint
from .repositories import GitConnection, Repository
from .sandboxes import Sandbox
from .sessions import Approval, FeatureSession, Message

__all__ = [
    "Approval",
    "Checkpoint",
    "FeatureSession",
    "GitConnection",
    "Message",
    "Repository",
    "Sandbox",
]
