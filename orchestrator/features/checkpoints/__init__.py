from __future__ import annotations

from .errors import (
    CheckpointNotFoundError,
    CheckpointNotRestorableError,
    CheckpointsDomainError,
    CheckpointValidationError,
)
from .service import (
    create_checkpoint,
    list_checkpoints,
    record_checkpoint,
    restore_checkpoint,
    to_checkpoint_out,
)
from .types import CheckpointOut, CheckpointType

__all__ = [
    "CheckpointNotFoundError",
    "CheckpointNotRestorableError",
    "CheckpointOut",
    "CheckpointType",
    "CheckpointValidationError",
    "CheckpointsDomainError",
    "create_checkpoint",
    "list_checkpoints",
    "record_checkpoint",
    "restore_checkpoint",
    "to_checkpoint_out",
]
