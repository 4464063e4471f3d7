"""Local persistence of store preferences.

Only three fields survive a restart: auto_save_enabled,
auto_save_interval, and checkpoint_filter. Session, workspace, and
checkpoints are always rebuilt from the server. The subset lives under a
single namespaced key in the backing storage.

Two storages are provided: ``FileStateStorage`` (a JSON document written
atomically, default ~/.sessionkit/state.json) and ``MemoryStateStorage``
for tests.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from sessionkit.atomic import atomic_write_json
from sessionkit.config import STATE_PATH, validate_auto_save_interval
from sessionkit.errors import ConfigurationError, Err, FileError, Ok, Result
from sessionkit.models import CheckpointFilter

logger = logging.getLogger(__name__)

STORAGE_KEY = "session-store"


class StateStorage(Protocol):
    """Key/value storage for JSON-safe values."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> Result[None, FileError]: ...


class MemoryStateStorage:
    """In-process storage. Nothing is shared between instances."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> Result[None, FileError]:
        # Round-trip through JSON so tests see what a file would hold
        self.data[key] = json.loads(json.dumps(value))
        return Ok(None)


class FileStateStorage:
    """JSON document on disk, one top-level member per key."""

    def __init__(self, path: Path | None = None):
        self.path = path or STATE_PATH

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> Result[None, FileError]:
        data = self._read()
        data[key] = value
        result = atomic_write_json(self.path, data)
        if result.is_err():
            return Err(result.unwrap_err())
        return Ok(None)


@dataclass(frozen=True)
class PersistedState:
    """The subset of store state kept across restarts."""

    auto_save_enabled: bool = True
    auto_save_interval: int = 30000
    checkpoint_filter: CheckpointFilter = field(default_factory=CheckpointFilter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "autoSaveEnabled": self.auto_save_enabled,
            "autoSaveInterval": self.auto_save_interval,
            "checkpointFilter": self.checkpoint_filter.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersistedState":
        """Parse a stored dict.

        Raises:
            ConfigurationError: If the stored interval is invalid
            KeyError, TypeError, ValueError: If the shape is wrong
        """
        return cls(
            auto_save_enabled=bool(data["autoSaveEnabled"]),
            auto_save_interval=validate_auto_save_interval(data["autoSaveInterval"]),
            checkpoint_filter=CheckpointFilter.from_dict(data.get("checkpointFilter") or {}),
        )


def load_persisted_state(storage: StateStorage, key: str = STORAGE_KEY) -> PersistedState | None:
    """Read the persisted subset, or None if absent or unusable."""
    raw = storage.get(key)
    if raw is None:
        return None
    try:
        return PersistedState.from_dict(raw)
    except (ConfigurationError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring invalid persisted state under {key!r}: {e}")
        return None


def save_persisted_state(
    storage: StateStorage,
    state: PersistedState,
    key: str = STORAGE_KEY,
) -> Result[None, FileError]:
    """Write the persisted subset, logging (not raising) on failure."""
    result = storage.set(key, state.to_dict())
    if result.is_err():
        logger.warning(f"Could not persist store state: {result.unwrap_err().message}")
    return result
