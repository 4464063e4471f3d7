"""sessionkit: Session and checkpoint state management for coding workspaces."""

__version__ = "0.3.0"

# Branded types for type-safe IDs
from sessionkit.types import CheckpointId, SessionId, UserId, WorkspaceId

__all__ = [
    "__version__",
    "CheckpointId",
    "SessionId",
    "UserId",
    "WorkspaceId",
]
