"""Branded ID types.

NewType wrappers keep session and checkpoint identifiers from being
mixed up at type-check time while staying plain strings at runtime.
"""

from typing import NewType

SessionId = NewType("SessionId", str)
CheckpointId = NewType("CheckpointId", str)
UserId = NewType("UserId", str)
WorkspaceId = NewType("WorkspaceId", str)
