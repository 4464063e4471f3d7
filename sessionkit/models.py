"""Data model for sessions, workspace state, and checkpoints.

Records returned by the persistence server are frozen dataclasses and are
replaced wholesale rather than mutated. Each record converts to and from
the server's camelCase JSON via ``from_dict`` / ``to_dict``.

``SessionState`` is the one mutable aggregate: it is the shape the
``SessionStore`` owns and updates between awaits.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from typing import Any, Literal

from sessionkit.types import CheckpointId, SessionId, UserId, WorkspaceId

CheckpointPriority = Literal["low", "medium", "high"]
SortField = Literal["created_at", "name", "priority", "size"]
SortOrder = Literal["asc", "desc"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high")
DEFAULT_PRIORITY: CheckpointPriority = "medium"
DEFAULT_CHECKPOINT_LIMIT = 20
DEFAULT_SORT_BY: SortField = "created_at"
DEFAULT_SORT_ORDER: SortOrder = "desc"

# Wire names for sort fields; the server speaks camelCase
SORT_FIELD_WIRE = {
    "created_at": "createdAt",
    "name": "name",
    "priority": "priority",
    "size": "size",
}
_SORT_FIELD_FROM_WIRE = {v: k for k, v in SORT_FIELD_WIRE.items()} | {
    "compressedSize": "size",
}


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_iso(value: datetime) -> str:
    """Format a datetime the way the server expects (UTC, millisecond Z)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _iso_or_none(value: datetime | None) -> str | None:
    return format_iso(value) if value is not None else None


# ============================================================================
# Workspace state
# ============================================================================

_WORKSPACE_WIRE = {
    "terminal_state": "terminalState",
    "browser_tabs": "browserTabs",
    "ai_conversations": "aiConversations",
    "open_files": "openFiles",
    "workspace_config": "workspaceConfig",
    "metadata": "metadata",
}
_WORKSPACE_FROM_WIRE = {v: k for k, v in _WORKSPACE_WIRE.items()}


@dataclass(frozen=True)
class WorkspaceState:
    """Opaque bundle describing an IDE workspace.

    The store never looks inside these collections. It only merges
    top-level keys and forwards the whole bundle to the server.

    Attributes:
        terminal_state: Terminal sessions (cwd, history, env)
        browser_tabs: Open browser tabs
        ai_conversations: Assistant conversation transcripts
        open_files: Editor buffers
        workspace_config: Free-form workspace settings
        metadata: Session metadata (name, tags, timestamps)
        extra: Server keys this client does not model, kept for round-trip
    """

    terminal_state: list[Any] = field(default_factory=list)
    browser_tabs: list[Any] = field(default_factory=list)
    ai_conversations: list[Any] = field(default_factory=list)
    open_files: list[Any] = field(default_factory=list)
    workspace_config: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def merge(self, partial: dict[str, Any]) -> "WorkspaceState":
        """Shallow-merge top-level keys into a new WorkspaceState.

        Keys may be field names or their camelCase wire names.

        Raises:
            TypeError: If a key is not a workspace field
        """
        changes = {_WORKSPACE_FROM_WIRE.get(key, key): value for key, value in partial.items()}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the server's JSON shape."""
        data: dict[str, Any] = dict(self.extra)
        for name, wire in _WORKSPACE_WIRE.items():
            value = getattr(self, name)
            if value is not None:
                data[wire] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkspaceState":
        """Create from the server's JSON shape."""
        known = {}
        extra = {}
        for key, value in data.items():
            if key in _WORKSPACE_FROM_WIRE:
                known[_WORKSPACE_FROM_WIRE[key]] = value
            else:
                extra[key] = value
        for name in ("terminal_state", "browser_tabs", "ai_conversations", "open_files"):
            if known.get(name) is None:
                known[name] = []
        return cls(**known, extra=extra)


# ============================================================================
# Session and checkpoint records
# ============================================================================


@dataclass(frozen=True)
class Session:
    """Server-side record of a user's workspace session."""

    id: SessionId
    user_id: UserId
    workspace_id: WorkspaceId
    name: str
    is_active: bool
    created_at: datetime
    last_saved_at: datetime | None
    checkpoint_count: int = 0
    total_size: int = 0
    expires_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the server's JSON shape."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "workspaceId": self.workspace_id,
            "name": self.name,
            "isActive": self.is_active,
            "createdAt": format_iso(self.created_at),
            "lastSavedAt": _iso_or_none(self.last_saved_at),
            "checkpointCount": self.checkpoint_count,
            "totalSize": self.total_size,
            "expiresAt": _iso_or_none(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create from the server's JSON shape."""
        return cls(
            id=SessionId(data["id"]),
            user_id=UserId(data.get("userId", "")),
            workspace_id=WorkspaceId(data.get("workspaceId", "")),
            name=data.get("name", ""),
            is_active=bool(data.get("isActive", True)),
            created_at=parse_datetime(data.get("createdAt")) or datetime.now(UTC),
            last_saved_at=parse_datetime(data.get("lastSavedAt")),
            checkpoint_count=int(data.get("checkpointCount") or 0),
            total_size=int(data.get("totalSize") or 0),
            expires_at=parse_datetime(data.get("expiresAt")),
        )


@dataclass(frozen=True)
class Checkpoint:
    """Named, immutable snapshot of a session's workspace state.

    Server-assigned: id, created_at, sizes. Only metadata (name,
    description, tags, priority) can change after creation.
    """

    id: CheckpointId
    session_id: SessionId
    name: str
    description: str | None
    tags: tuple[str, ...]
    priority: CheckpointPriority
    created_at: datetime
    compressed_size: int = 0
    uncompressed_size: int = 0
    is_auto_generated: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the server's JSON shape."""
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags),
            "priority": self.priority,
            "createdAt": format_iso(self.created_at),
            "compressedSize": self.compressed_size,
            "uncompressedSize": self.uncompressed_size,
            "isAutoGenerated": self.is_auto_generated,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checkpoint":
        """Create from the server's JSON shape."""
        return cls(
            id=CheckpointId(data["id"]),
            session_id=SessionId(data.get("sessionId", "")),
            name=data.get("name", ""),
            description=data.get("description"),
            tags=tuple(data.get("tags") or ()),
            priority=data.get("priority") or DEFAULT_PRIORITY,
            created_at=parse_datetime(data.get("createdAt")) or datetime.now(UTC),
            compressed_size=int(data.get("compressedSize") or 0),
            uncompressed_size=int(data.get("uncompressedSize") or 0),
            is_auto_generated=bool(data.get("isAutoGenerated", False)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class RestoreResult:
    """Session and workspace state returned by a restore call."""

    session: Session
    workspace_state: WorkspaceState

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RestoreResult":
        return cls(
            session=Session.from_dict(data["session"]),
            workspace_state=WorkspaceState.from_dict(data.get("workspaceState") or {}),
        )


# ============================================================================
# Checkpoint filter
# ============================================================================


@dataclass(frozen=True)
class CheckpointFilter:
    """Query parameters for listing checkpoints.

    Attributes:
        limit: Maximum number of checkpoints to return
        sort_by: Field to sort on server-side
        sort_order: asc or desc
        tags: Only checkpoints carrying all of these tags
        priority: Only checkpoints with this priority
        session_id: Only checkpoints of this session
        created_after: Only checkpoints created after this instant
        created_before: Only checkpoints created before this instant
    """

    limit: int | None = DEFAULT_CHECKPOINT_LIMIT
    sort_by: SortField | None = DEFAULT_SORT_BY
    sort_order: SortOrder | None = DEFAULT_SORT_ORDER
    tags: tuple[str, ...] | None = None
    priority: CheckpointPriority | None = None
    session_id: SessionId | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None

    def merge(self, override: "FilterOverride | None") -> "CheckpointFilter":
        """Return a new filter with the override's set fields applied."""
        if override is None:
            return self
        if isinstance(override, CheckpointFilter):
            # A full filter replaces every field it carries a value for
            changes = {f.name: getattr(override, f.name) for f in fields(override)}
            changes = {k: v for k, v in changes.items() if v is not None}
        else:
            changes = dict(override)
        if "tags" in changes and changes["tags"] is not None:
            changes["tags"] = tuple(changes["tags"])
        return replace(self, **changes)

    def to_query_params(self) -> list[tuple[str, str]]:
        """Build query parameters field by field.

        Lists repeat their key, datetimes become ISO strings, and unset
        fields are omitted.
        """
        params: list[tuple[str, str]] = []
        if self.limit is not None:
            params.append(("limit", str(self.limit)))
        if self.sort_by is not None:
            params.append(("sortBy", SORT_FIELD_WIRE.get(self.sort_by, self.sort_by)))
        if self.sort_order is not None:
            params.append(("sortOrder", self.sort_order))
        if self.tags is not None:
            params.extend(("tags", tag) for tag in self.tags)
        if self.priority is not None:
            params.append(("priority", self.priority))
        if self.session_id is not None:
            params.append(("sessionId", self.session_id))
        if self.created_after is not None:
            params.append(("createdAfter", format_iso(self.created_after)))
        if self.created_before is not None:
            params.append(("createdBefore", format_iso(self.created_before)))
        return params

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dict for local persistence."""
        return {
            "limit": self.limit,
            "sortBy": SORT_FIELD_WIRE.get(self.sort_by, self.sort_by) if self.sort_by else None,
            "sortOrder": self.sort_order,
            "tags": list(self.tags) if self.tags is not None else None,
            "priority": self.priority,
            "sessionId": self.session_id,
            "createdAfter": _iso_or_none(self.created_after),
            "createdBefore": _iso_or_none(self.created_before),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointFilter":
        sort_by = data.get("sortBy", DEFAULT_SORT_BY)
        tags = data.get("tags")
        return cls(
            limit=data.get("limit", DEFAULT_CHECKPOINT_LIMIT),
            sort_by=_SORT_FIELD_FROM_WIRE.get(sort_by, sort_by),
            sort_order=data.get("sortOrder", DEFAULT_SORT_ORDER),
            tags=tuple(tags) if tags is not None else None,
            priority=data.get("priority"),
            session_id=data.get("sessionId"),
            created_after=parse_datetime(data.get("createdAfter")),
            created_before=parse_datetime(data.get("createdBefore")),
        )


# Partial filter: a full CheckpointFilter or a mapping of field names to values
FilterOverride = CheckpointFilter | dict[str, Any]


# ============================================================================
# Operation options
# ============================================================================


@dataclass(frozen=True)
class CheckpointCreateOptions:
    description: str | None = None
    tags: list[str] | tuple[str, ...] | None = None
    priority: CheckpointPriority | None = None
    encrypt_data: bool = False
    encryption_key: str | None = None


@dataclass(frozen=True)
class CheckpointRestoreOptions:
    encryption_key: str | None = None
    create_backup: bool = False
    backup_name: str | None = None


@dataclass(frozen=True)
class CheckpointMetadataUpdates:
    """Partial metadata update. Fields left as None are not sent."""

    name: str | None = None
    description: str | None = None
    tags: list[str] | tuple[str, ...] | None = None
    priority: CheckpointPriority | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name is not None:
            data["name"] = self.name
        if self.description is not None:
            data["description"] = self.description
        if self.tags is not None:
            data["tags"] = list(self.tags)
        if self.priority is not None:
            data["priority"] = self.priority
        return data


@dataclass(frozen=True)
class SessionSaveOptions:
    force: bool = False


@dataclass(frozen=True)
class SessionRestoreOptions:
    encryption_key: str | None = None
    create_backup: bool = False


@dataclass(frozen=True)
class NewSessionConfig:
    """Parameters for creating a session on the server."""

    user_id: UserId
    workspace_id: WorkspaceId
    name: str
    workspace_state: WorkspaceState
    encryption_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "userId": self.user_id,
            "workspaceId": self.workspace_id,
            "name": self.name,
            "workspaceState": self.workspace_state.to_dict(),
        }
        if self.encryption_key is not None:
            data["encryptionKey"] = self.encryption_key
        return data


# ============================================================================
# Store aggregate
# ============================================================================


@dataclass
class SessionState:
    """Everything the SessionStore tracks.

    Only auto_save_enabled, auto_save_interval and checkpoint_filter are
    persisted locally. The rest is rebuilt from the server.
    """

    current_session: Session | None = None
    workspace_state: WorkspaceState | None = None
    is_dirty: bool = False
    last_saved: datetime | None = None
    auto_save_enabled: bool = True
    auto_save_interval: int = 30000  # ms
    checkpoints: list[Checkpoint] = field(default_factory=list)
    checkpoint_filter: CheckpointFilter = field(default_factory=CheckpointFilter)
    is_loading_checkpoints: bool = False
    is_creating_checkpoint: bool = False
    is_restoring_checkpoint: bool = False

    # Checkpoint form draft
    checkpoint_name: str = ""
    checkpoint_description: str = ""
    checkpoint_tags: list[str] = field(default_factory=list)
    checkpoint_priority: CheckpointPriority = DEFAULT_PRIORITY

    # Most recent auto-save outcome (sessionkit.events.AutoSaveOutcome)
    last_auto_save: Any = None
