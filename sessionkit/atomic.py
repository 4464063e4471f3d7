"""Atomic file writes for local state and config.

Writes go to a temp file in the target directory and are renamed into
place, so a crash never leaves a half-written state.json or config.yaml.
Functions return Result values instead of raising.

Security:
- Files are created with 0o600 permissions by default
- Parent directories are created with 0o700 permissions
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from sessionkit.errors import Err, FileError, Ok, Result

logger = logging.getLogger(__name__)


def atomic_write_text(
    path: Path,
    content: str,
    mode: int = 0o600,
) -> Result[Path, FileError]:
    """Atomically write text content to a file.

    Args:
        path: Target file path
        content: Text content to write
        mode: File permissions (default 0o600 - owner read/write only)

    Returns:
        Ok(path) on success, Err(FileError) on failure
    """
    path = Path(path)
    temp_path: str | None = None

    try:
        path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

        # Same directory as the target so os.replace stays on one filesystem
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.stem}_",
            suffix=f"{path.suffix}.tmp",
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)

        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
        temp_path = None

        logger.debug(f"Atomic write complete: {path}")
        return Ok(path)

    except PermissionError as e:
        logger.error(f"Permission denied writing {path}: {e}")
        return Err(
            FileError(
                code="ATOMIC_PERMISSION_DENIED",
                message=f"Permission denied writing to {path}",
                context={"path": str(path)},
            )
        )

    except OSError as e:
        logger.error(f"OS error writing {path}: {e}")
        return Err(
            FileError(
                code="ATOMIC_WRITE_FAILED",
                message=f"Failed to write {path}: {e}",
                context={"path": str(path), "error": str(e)},
            )
        )

    finally:
        _cleanup_temp(temp_path)


def atomic_write_json(path: Path, data: Any, mode: int = 0o600) -> Result[Path, FileError]:
    """Atomically write JSON data (indented, UTF-8) to a file."""
    try:
        content = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error(f"JSON serialization failed: {e}")
        return Err(
            FileError(
                code="JSON_SERIALIZATION_FAILED",
                message=f"Failed to serialize data to JSON: {e}",
                context={"error": str(e)},
            )
        )

    return atomic_write_text(path, content, mode)


def atomic_write_yaml(path: Path, data: Any, mode: int = 0o600) -> Result[Path, FileError]:
    """Atomically write YAML data with yaml.safe_dump."""
    try:
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    except yaml.YAMLError as e:
        logger.error(f"YAML serialization failed: {e}")
        return Err(
            FileError(
                code="YAML_SERIALIZATION_FAILED",
                message=f"Failed to serialize data to YAML: {e}",
                context={"error": str(e)},
            )
        )

    return atomic_write_text(path, content, mode)


def _cleanup_temp(temp_path: str | None) -> None:
    """Remove a leftover temp file, if any."""
    if temp_path is None:
        return

    try:
        os.unlink(temp_path)
        logger.debug(f"Cleaned up temp file: {temp_path}")
    except OSError:
        pass
