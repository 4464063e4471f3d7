"""Validation rules for checkpoint metadata and session data.

All checks are synchronous and raise ValidationError before any network
call is made. Messages are user-facing and stable.
"""

from typing import Any

from sessionkit.errors import ValidationError
from sessionkit.models import PRIORITIES

MAX_CHECKPOINT_NAME_LENGTH = 100
MAX_TAGS_PER_CHECKPOINT = 10
MAX_TAG_LENGTH = 50


def validate_checkpoint_name(name: str) -> bool:
    """Check a checkpoint name is non-blank and at most 100 characters.

    Returns:
        True if valid

    Raises:
        ValidationError: If the name is empty, whitespace-only, or too long
    """
    if not name or not name.strip():
        raise ValidationError("Checkpoint name cannot be empty", code="EMPTY_NAME")

    if len(name) > MAX_CHECKPOINT_NAME_LENGTH:
        raise ValidationError(
            f"Checkpoint name cannot exceed {MAX_CHECKPOINT_NAME_LENGTH} characters",
            code="NAME_TOO_LONG",
            context={"length": len(name)},
        )

    return True


def validate_checkpoint_priority(priority: str) -> bool:
    """Check priority is one of low, medium, high."""
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority: {priority}. Must be one of: {', '.join(PRIORITIES)}",
            code="INVALID_PRIORITY",
            context={"priority": priority},
        )
    return True


def validate_checkpoint_tags(tags: Any) -> bool:
    """Check a tag collection.

    Rules: a list or tuple, at most 10 entries, each a string of at most
    50 characters containing no comma.

    Raises:
        ValidationError: On the first rule violated
    """
    if not isinstance(tags, (list, tuple)):
        raise ValidationError("Tags must be an array", code="TAGS_NOT_ARRAY")

    if len(tags) > MAX_TAGS_PER_CHECKPOINT:
        raise ValidationError(
            f"Cannot have more than {MAX_TAGS_PER_CHECKPOINT} tags per checkpoint",
            code="TOO_MANY_TAGS",
            context={"count": len(tags)},
        )

    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("All tags must be strings", code="TAG_NOT_STRING")

        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(
                f"Tag cannot exceed {MAX_TAG_LENGTH} characters",
                code="TAG_TOO_LONG",
                context={"tag": tag},
            )

        if "," in tag:
            raise ValidationError(
                "Tags cannot contain commas", code="TAG_HAS_COMMA", context={"tag": tag}
            )

    return True


def validate_session_data(session_id: str | None, workspace_state: Any) -> None:
    """Check a session id and workspace state are both present."""
    if not session_id:
        raise ValidationError("Session ID is required", code="MISSING_SESSION_ID")

    if workspace_state is None:
        raise ValidationError("Workspace state is required", code="MISSING_WORKSPACE_STATE")


def validate_checkpoint_metadata(
    name: str | None = None,
    priority: str | None = None,
    tags: Any = None,
) -> None:
    """Run each check whose value is provided."""
    if name is not None:
        validate_checkpoint_name(name)
    if priority is not None:
        validate_checkpoint_priority(priority)
    if tags is not None:
        validate_checkpoint_tags(tags)
