# persona_learner/stability/__init__.py

from .validation import ValidationTracker, ValidationState
from .overfitting import OverfittingDetector, OverfittingReport
from .checkpoint import (
    BlobStore,
    Checkpoint,
    CheckpointManager,
    FileBlobStore,
    InMemoryBlobStore,
    checkpoint_key,
)

__all__ = [
    "ValidationTracker",
    "ValidationState",
    "OverfittingDetector",
    "OverfittingReport",
    "BlobStore",
    "Checkpoint",
    "CheckpointManager",
    "FileBlobStore",
    "InMemoryBlobStore",
    "checkpoint_key",
]
