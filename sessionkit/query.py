"""Checkpoint query engine.

Pure functions over checkpoint lists: local search and tag filtering,
stable sorting, and the display helpers used by the CLI. Nothing here
touches the network or the store.
"""

import unicodedata
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from sessionkit.models import (
    DEFAULT_CHECKPOINT_LIMIT,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_ORDER,
    Checkpoint,
    CheckpointFilter,
)

BYTES_PER_KB = 1024
SIZE_UNITS = ("B", "KB", "MB", "GB")
DEFAULT_MAX_AGE_MS = 30 * 24 * 60 * 60 * 1000  # 30 days

PRIORITY_ORDER = {"low": 0, "medium": 1, "high": 2}

# Accept both Python and wire spellings of the sort field
_SORT_ALIASES = {
    "created_at": "created_at",
    "createdAt": "created_at",
    "name": "name",
    "size": "size",
    "compressed_size": "size",
    "compressedSize": "size",
    "priority": "priority",
}


def create_default_checkpoint_filter(**overrides: Any) -> CheckpointFilter:
    """Build the default filter (limit 20, newest first) with overrides."""
    base = CheckpointFilter(
        limit=DEFAULT_CHECKPOINT_LIMIT,
        sort_by=DEFAULT_SORT_BY,
        sort_order=DEFAULT_SORT_ORDER,
    )
    return base.merge(overrides) if overrides else base


def _matches_query(checkpoint: Checkpoint, query: str) -> bool:
    if query in checkpoint.name.lower():
        return True
    return bool(checkpoint.description) and query in checkpoint.description.lower()


def filter_checkpoints(
    checkpoints: Sequence[Checkpoint],
    search_query: str | None = None,
    tags: Iterable[str] | None = None,
) -> Sequence[Checkpoint]:
    """Filter checkpoints by free-text search and required tags.

    A checkpoint matches when the query is a case-insensitive substring of
    its name or description AND it carries every requested tag. Tag
    matching is exact and case-sensitive.

    Args:
        checkpoints: Checkpoints to filter
        search_query: Text to look for; empty or None matches everything
        tags: Tags that must all be present; empty or None matches everything

    Returns:
        The input itself when neither criterion is given, else a new list
    """
    required = list(tags or ())
    if not search_query and not required:
        return checkpoints

    query = search_query.lower() if search_query else ""
    result = []
    for checkpoint in checkpoints:
        if query and not _matches_query(checkpoint, query):
            continue
        if required and not all(tag in checkpoint.tags for tag in required):
            continue
        result.append(checkpoint)
    return result


def _collation_key(text: str) -> tuple[str, str]:
    """Order text by base letters first, ignoring case and accents.

    Ties on the base letters fall back to the case-folded text, so "e"
    sorts before "é" and "Éclair" sorts with the E's.
    """
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base.casefold(), text.casefold()


def _sort_key(sort_by: str):
    if sort_by == "name":
        return lambda c: _collation_key(c.name)
    if sort_by == "size":
        return lambda c: c.compressed_size
    if sort_by == "priority":
        return lambda c: PRIORITY_ORDER.get(c.priority, 0)
    return lambda c: c.created_at


def sort_checkpoints(
    checkpoints: Iterable[Checkpoint],
    sort_by: str = "created_at",
    sort_order: str = "asc",
) -> list[Checkpoint]:
    """Return a sorted copy of checkpoints.

    Sorting is stable. Descending order is the exact reverse of the
    ascending result, so ties come out reversed too. Unknown sort fields
    fall back to creation time.
    """
    field_name = _SORT_ALIASES.get(sort_by, "created_at")
    result = sorted(checkpoints, key=_sort_key(field_name))
    if sort_order == "desc":
        result.reverse()
    return result


def format_checkpoint_size(size_bytes: int | float) -> str:
    """Format a byte count with one decimal, from B up to GB.

    Values of 1024 GB or more stay in GB. Negative values are not scaled.
    """
    size = float(size_bytes)
    unit_index = 0

    while size >= BYTES_PER_KB and unit_index < len(SIZE_UNITS) - 1:
        size /= BYTES_PER_KB
        unit_index += 1

    return f"{size:.1f} {SIZE_UNITS[unit_index]}"


def format_checkpoint_date(value: datetime | str, include_time: bool = True) -> str:
    """Format a timestamp in local time for display."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    local = value.astimezone()
    if include_time:
        return local.strftime("%Y-%m-%d %H:%M:%S")
    return local.strftime("%Y-%m-%d")


def is_checkpoint_expired(
    checkpoint: Checkpoint,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    now: datetime | None = None,
) -> bool:
    """True when the checkpoint is strictly older than max_age_ms."""
    now = now or datetime.now(UTC)
    age = now - checkpoint.created_at
    return age > timedelta(milliseconds=max_age_ms)


def create_checkpoint_summary(checkpoint: Checkpoint) -> str:
    """One-line human summary of a checkpoint.

    Example:
        Bug Fix (Fixed auth) [bug, auth] - 1.5 KB (high priority) Created: 2024-01-15
    """
    parts = [checkpoint.name]

    if checkpoint.description:
        parts.append(f"({checkpoint.description})")

    if checkpoint.tags:
        parts.append(f"[{', '.join(checkpoint.tags)}]")

    parts.append(f"- {format_checkpoint_size(checkpoint.compressed_size)}")
    parts.append(f"({checkpoint.priority} priority)")
    parts.append(f"Created: {format_checkpoint_date(checkpoint.created_at, include_time=False)}")

    return " ".join(parts)
