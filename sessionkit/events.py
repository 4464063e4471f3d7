"""Event types emitted by the session store and auto-save scheduler.

Events are immutable dataclasses describing something that already
happened. Listeners registered with ``SessionStore.subscribe`` receive
every instance; the auto-save scheduler also hands its outcome events to
its own ``on_outcome`` callback.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class AutoSaveSucceeded:
    """An auto-save tick completed and the save reported success.

    A tick where nothing was dirty also counts as a success.
    """

    timestamp: datetime


@dataclass(frozen=True)
class AutoSaveFailed:
    """An auto-save tick failed.

    Attributes:
        timestamp: When the tick finished
        consecutive_failures: Failures in a row, including this one
        error: Error text if the save raised, else None
    """

    timestamp: datetime
    consecutive_failures: int
    error: str | None = None


AutoSaveOutcome = AutoSaveSucceeded | AutoSaveFailed


@dataclass(frozen=True)
class SessionCreated:
    """A new session was created on the server and made current."""

    timestamp: datetime
    session_id: str


@dataclass(frozen=True)
class SessionSaved:
    """The current session's workspace state was persisted."""

    timestamp: datetime
    session_id: str


@dataclass(frozen=True)
class SessionRestored:
    """A session was restored from the server and made current."""

    timestamp: datetime
    session_id: str


@dataclass(frozen=True)
class CheckpointCreated:
    """A checkpoint was created for the current session."""

    timestamp: datetime
    checkpoint_id: str
    session_id: str


@dataclass(frozen=True)
class CheckpointRestored:
    """A checkpoint was restored.

    Attributes:
        timestamp: When the restore finished
        checkpoint_id: Checkpoint that was restored
        session_id: Session now current, which may differ from the prior one
    """

    timestamp: datetime
    checkpoint_id: str
    session_id: str


@dataclass(frozen=True)
class CheckpointDeleted:
    timestamp: datetime
    checkpoint_id: str


StoreEvent = (
    AutoSaveSucceeded
    | AutoSaveFailed
    | SessionCreated
    | SessionSaved
    | SessionRestored
    | CheckpointCreated
    | CheckpointRestored
    | CheckpointDeleted
)
