"""Configuration management for sessionkit.

Storage Structure
-----------------
~/.sessionkit/                    # User-level (NEVER in git repos)
├── config.yaml                   # Server URL and API token (secrets!)
├── tuning.yaml                   # Personal defaults
└── state.json                    # Persisted store subset

<project>/.sessionkit/            # Project-level (shareable via git)
└── tuning.yaml                   # Team defaults

Configuration Classes
---------------------
**Config** (Connection/Secrets)
    Stored ONLY in ~/.sessionkit/config.yaml.
    - api_base_url: Persistence server (or SESSIONKIT_API_URL env var)
    - api_token: Bearer token (or SESSIONKIT_API_TOKEN env var)
    - request_timeout: Per-request timeout in seconds

**SessionKitConfig** (Tuning/Shareable)
    Cascade: project .sessionkit/tuning.yaml → user ~/.sessionkit/tuning.yaml → defaults
    - auto_save_enabled, auto_save_interval: Auto-save behaviour (interval in ms)
    - checkpoint_limit, checkpoint_sort_by, checkpoint_sort_order: Default listing
    - checkpoint_priority: Default priority for new checkpoints
    - checkpoint_max_age_days: Age after which a checkpoint counts as expired
    - auto_save_failure_threshold: Consecutive failures before warning
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from sessionkit.atomic import atomic_write_yaml
from sessionkit.errors import ConfigurationError
from sessionkit.models import PRIORITIES, SORT_FIELD_WIRE, CheckpointFilter

logger = logging.getLogger(__name__)

# Standard paths
SESSIONKIT_DIR = Path.home() / ".sessionkit"
CONFIG_PATH = SESSIONKIT_DIR / "config.yaml"
STATE_PATH = SESSIONKIT_DIR / "state.json"

DEFAULT_API_BASE_URL = "http://localhost:3000"


@dataclass
class Config:
    """Connection configuration."""

    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    request_timeout: float = 30.0

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load configuration from file and environment."""
        path = path or CONFIG_PATH
        config = cls()

        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            config = cls._from_dict(data)

        # Environment variables override file config
        if env_url := os.environ.get("SESSIONKIT_API_URL"):
            config.api_base_url = env_url
        if env_token := os.environ.get("SESSIONKIT_API_TOKEN"):
            config.api_token = env_token

        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        timeout = data.get("request_timeout", 30.0)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be a positive number, got {timeout!r}"
            )
        return cls(
            api_base_url=data.get("api_base_url", DEFAULT_API_BASE_URL),
            api_token=data.get("api_token"),
            request_timeout=float(timeout),
        )

    def save(self, path: Path | None = None) -> Path:
        """Save configuration to file (0o600, may contain a token)."""
        path = path or CONFIG_PATH
        data = {
            "api_base_url": self.api_base_url,
            "api_token": self.api_token,
            "request_timeout": self.request_timeout,
        }
        result = atomic_write_yaml(path, data)
        if result.is_err():
            raise OSError(result.unwrap_err().message)
        return path


def validate_auto_save_interval(interval: Any) -> int:
    """Return interval if it is a positive integer of milliseconds.

    Raises:
        ConfigurationError: For zero, negative, or non-integer values
    """
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ConfigurationError(
            f"Auto-save interval must be a positive integer (ms), got {interval!r}",
            context={"interval": interval},
        )
    return interval


def _require_positive_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(
            f"{name} must be a positive integer, got {value!r}",
            context={name: value},
        )


@dataclass
class SessionKitConfig:
    """Tunable defaults for the session store and CLI."""

    # Auto-save
    auto_save_enabled: bool = True
    auto_save_interval: int = 30000  # ms
    auto_save_failure_threshold: int = 3

    # Checkpoint listing defaults
    checkpoint_limit: int = 20
    checkpoint_sort_by: str = "created_at"
    checkpoint_sort_order: str = "desc"

    # New checkpoints
    checkpoint_priority: str = "medium"
    checkpoint_max_age_days: int = 30

    def __post_init__(self) -> None:
        if not isinstance(self.auto_save_enabled, bool):
            raise ConfigurationError(
                f"auto_save_enabled must be true or false, got {self.auto_save_enabled!r}"
            )
        validate_auto_save_interval(self.auto_save_interval)
        for name in ("auto_save_failure_threshold", "checkpoint_limit", "checkpoint_max_age_days"):
            _require_positive_int(name, getattr(self, name))
        for name, allowed in (
            ("checkpoint_sort_by", tuple(SORT_FIELD_WIRE)),
            ("checkpoint_sort_order", ("asc", "desc")),
            ("checkpoint_priority", PRIORITIES),
        ):
            value = getattr(self, name)
            if not isinstance(value, str) or value not in allowed:
                raise ConfigurationError(
                    f"Unknown {name}: {value!r}. Must be one of: {', '.join(allowed)}"
                )

    @property
    def checkpoint_max_age_ms(self) -> int:
        return self.checkpoint_max_age_days * 24 * 60 * 60 * 1000

    def default_filter(self) -> CheckpointFilter:
        """Checkpoint filter built from the listing defaults."""
        return CheckpointFilter(
            limit=self.checkpoint_limit,
            sort_by=self.checkpoint_sort_by,
            sort_order=self.checkpoint_sort_order,
        )

    @classmethod
    def load(cls, config_dir: Path) -> "SessionKitConfig":
        """Load config from a .sessionkit directory.

        Args:
            config_dir: Path to .sessionkit directory (project-local or user-level)

        Returns:
            SessionKitConfig with values from file, or defaults if not found

        Raises:
            ConfigurationError: If a known key has an invalid value
        """
        config_path = config_dir / "tuning.yaml"
        if config_path.exists():
            with open(config_path) as f:
                overrides = yaml.safe_load(f) or {}
            # Only apply known fields
            valid_fields = {f.name for f in fields(cls)}
            valid_overrides = {k: v for k, v in overrides.items() if k in valid_fields}
            ignored = set(overrides) - valid_fields - {"_version"}
            if ignored:
                logger.debug(f"Ignoring unknown tuning keys in {config_path}: {sorted(ignored)}")
            return cls(**valid_overrides)
        return cls()

    def save(self, config_dir: Path) -> Path:
        """Save config to a .sessionkit directory.

        Returns:
            Path to saved config file
        """
        config_path = config_dir / "tuning.yaml"

        # Only save non-default values to keep file clean
        defaults = SessionKitConfig()
        data = {k: v for k, v in self.to_dict().items() if getattr(defaults, k) != v}

        if not data:
            data = {"_version": 1}  # Marker that config was explicitly saved

        result = atomic_write_yaml(config_path, data)
        if result.is_err():
            raise OSError(result.unwrap_err().message)
        return config_path

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def get_sessionkit_config(project_path: Path | None = None) -> SessionKitConfig:
    """Load SessionKitConfig with project → user → default cascade.

    Priority (highest to lowest):
    1. Project-level config (<project>/.sessionkit/tuning.yaml)
    2. User-level config (~/.sessionkit/tuning.yaml)
    3. Built-in defaults

    Args:
        project_path: Explicit project path. If None, auto-detects.
    """
    if project_path is not None:
        project_dir = project_path / ".sessionkit"
        if project_dir.exists():
            return SessionKitConfig.load(project_dir)

    detected_root = detect_project_root()
    if detected_root is not None:
        project_dir = detected_root / ".sessionkit"
        if project_dir.exists():
            return SessionKitConfig.load(project_dir)

    return SessionKitConfig.load(SESSIONKIT_DIR)


def detect_project_root(start_path: Path | None = None) -> Path | None:
    """Detect project root by walking up from start_path.

    Looks for a .sessionkit directory first, then a .git entry. Stops at
    the home directory.

    Returns:
        Project root path, or None if no project markers found.
    """
    current = (start_path or Path.cwd()).resolve()
    home = Path.home()

    while current != current.parent:
        if (current / ".sessionkit").is_dir() or (current / ".git").exists():
            return current
        if current == home:
            break
        current = current.parent

    return None
