"""sessionkit CLI - manage workspace sessions and checkpoints from the terminal."""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sessionkit import __version__
from sessionkit.config import (
    SESSIONKIT_DIR,
    Config,
    SessionKitConfig,
    get_sessionkit_config,
)
from sessionkit.errors import ConfigurationError, SessionKitError, format_error
from sessionkit.gateway import PersistenceGateway
from sessionkit.models import (
    PRIORITIES,
    CheckpointCreateOptions,
    CheckpointMetadataUpdates,
    CheckpointRestoreOptions,
    NewSessionConfig,
    SessionSaveOptions,
    WorkspaceState,
)
from sessionkit.persistence import FileStateStorage
from sessionkit.query import (
    create_checkpoint_summary,
    filter_checkpoints,
    format_checkpoint_date,
    format_checkpoint_size,
    is_checkpoint_expired,
    sort_checkpoints,
)
from sessionkit.store import SessionStore
from sessionkit.types import CheckpointId, SessionId, UserId, WorkspaceId

console = Console()

T = TypeVar("T")

PRIORITY_STYLES = {
    "high": "red",
    "medium": "yellow",
    "low": "green",
}


def priority_style(priority: str) -> str:
    """Rich style for a priority, dim for anything unknown."""
    return PRIORITY_STYLES.get(priority, "dim")


def _make_gateway() -> PersistenceGateway:
    return PersistenceGateway(Config.load())


def _make_storage() -> FileStateStorage:
    return FileStateStorage()


def _make_store() -> SessionStore:
    return SessionStore(_make_gateway(), storage=_make_storage(), config=get_sessionkit_config())


def _run(action: Callable[[SessionStore], Awaitable[T]]) -> T:
    """Run an async action against a fresh store, exiting 1 on errors."""

    async def runner() -> T:
        store = _make_store()
        try:
            return await action(store)
        finally:
            await store.aclose()

    try:
        return asyncio.run(runner())
    except SessionKitError as e:
        console.print(f"[red]{format_error(e)}[/red]")
        sys.exit(1)


def _read_workspace_state(path: str | None) -> WorkspaceState:
    if path is None:
        return WorkspaceState()
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read workspace state from {path}: {e}[/red]")
        sys.exit(1)
    if not isinstance(data, dict):
        console.print(f"[red]Workspace state in {path} must be a JSON object[/red]")
        sys.exit(1)
    return WorkspaceState.from_dict(data)


async def _open_session(store: SessionStore, session_id: str) -> None:
    if not await store.restore_session(SessionId(session_id)):
        raise SessionKitError(f"Could not load session {session_id}", code="SESSION_NOT_LOADED")


@click.group()
@click.version_option(version=__version__)
def main():
    """sessionkit: Save and restore coding workspace sessions."""
    pass


# ============================================================================
# Sessions
# ============================================================================


@main.group()
def session():
    """Create, inspect, and save sessions."""
    pass


@session.command("new")
@click.argument("name")
@click.option("--user", "user_id", required=True, help="Owning user id")
@click.option("--workspace", "workspace_id", required=True, help="Workspace id")
@click.option("--state", "state_path", type=click.Path(exists=True), help="Workspace state JSON file")
def session_new(name: str, user_id: str, workspace_id: str, state_path: str | None):
    """Create a new session.

    Examples:
        sessionkit session new "Auth rewrite" --user u1 --workspace w1
    """
    new_config = NewSessionConfig(
        user_id=UserId(user_id),
        workspace_id=WorkspaceId(workspace_id),
        name=name,
        workspace_state=_read_workspace_state(state_path),
    )
    session_id = _run(lambda store: store.create_new_session(new_config))
    console.print(f"[green]✓[/green] Created session: {session_id}")


@session.command("show")
@click.argument("session_id")
def session_show(session_id: str):
    """Show a session and its most recent checkpoints."""

    async def action(store: SessionStore):
        await _open_session(store, session_id)
        return store.state

    state = _run(action)
    current = state.current_session
    console.print(f"[bold]{escape(current.name)}[/bold] [dim]({current.id})[/dim]")
    console.print(f"  user: {current.user_id}")
    console.print(f"  workspace: {current.workspace_id}")
    console.print(f"  active: {'yes' if current.is_active else 'no'}")
    console.print(f"  created: {format_checkpoint_date(current.created_at)}")
    if current.last_saved_at is not None:
        console.print(f"  last saved: {format_checkpoint_date(current.last_saved_at)}")
    if current.expires_at is not None:
        console.print(f"  expires: {format_checkpoint_date(current.expires_at)}")
    console.print(f"  size: {format_checkpoint_size(current.total_size)}")
    console.print(f"  checkpoints: {current.checkpoint_count}")

    if state.checkpoints:
        console.print()
        for item in state.checkpoints[:5]:
            console.print(f"  • {escape(create_checkpoint_summary(item))}")


@session.command("save")
@click.argument("session_id")
@click.option("--state", "state_path", type=click.Path(exists=True), required=True,
              help="Workspace state JSON file")
@click.option("--force", is_flag=True, help="Save even if nothing changed")
def session_save(session_id: str, state_path: str, force: bool):
    """Upload new workspace state for a session."""
    workspace_state = _read_workspace_state(state_path)

    async def action(store: SessionStore) -> bool:
        await _open_session(store, session_id)
        store.set_workspace_state(workspace_state)
        return await store.save_session(SessionSaveOptions(force=force))

    if not _run(action):
        console.print(f"[red]Failed to save session {session_id}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Saved session: {session_id}")


# ============================================================================
# Checkpoints
# ============================================================================


@main.group()
def checkpoint():
    """List, create, restore, and edit checkpoints."""
    pass


@checkpoint.command("list")
@click.argument("session_id")
@click.option("--search", "-s", help="Match name or description")
@click.option("--tag", "tags", multiple=True, help="Require tag (repeatable)")
@click.option("--sort", "sort_by", type=click.Choice(["created_at", "name", "priority", "size"]),
              default=None, help="Sort field")
@click.option("--order", "sort_order", type=click.Choice(["asc", "desc"]), default=None)
@click.option("--limit", "-n", type=int, default=None, help="Maximum checkpoints to fetch")
def checkpoint_list(session_id: str, search: str | None, tags: tuple[str, ...],
                    sort_by: str | None, sort_order: str | None, limit: int | None):
    """List checkpoints of a session.

    Examples:
        sessionkit checkpoint list s1
        sessionkit checkpoint list s1 --tag database --sort name --order asc
    """
    override: dict[str, Any] = {"session_id": SessionId(session_id)}
    if limit is not None:
        override["limit"] = limit
    if sort_by is not None:
        override["sort_by"] = sort_by
    if sort_order is not None:
        override["sort_order"] = sort_order

    async def action(store: SessionStore):
        await store.load_checkpoints(override)
        return store.state, store.config

    state, tuning = _run(action)
    active = state.checkpoint_filter
    checkpoints = filter_checkpoints(state.checkpoints, search, tags)
    checkpoints = sort_checkpoints(checkpoints, active.sort_by or "created_at", active.sort_order or "desc")

    if not checkpoints:
        console.print("[dim]No checkpoints found.[/dim]")
        return

    table = Table(title=f"Checkpoints ({len(checkpoints)})")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Tags")
    table.add_column("Priority")
    table.add_column("Size", justify="right")
    table.add_column("Created")

    for item in checkpoints:
        created = format_checkpoint_date(item.created_at)
        if is_checkpoint_expired(item, tuning.checkpoint_max_age_ms):
            created += " [dim](expired)[/dim]"
        table.add_row(
            item.id,
            escape(item.name),
            escape(", ".join(item.tags)),
            f"[{priority_style(item.priority)}]{item.priority}[/]",
            format_checkpoint_size(item.compressed_size),
            created,
        )

    console.print(table)


@checkpoint.command("create")
@click.argument("session_id")
@click.argument("name")
@click.option("--description", "-d", help="What this checkpoint captures")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--priority", "-p", type=click.Choice(list(PRIORITIES)), default=None)
@click.option("--encrypt", "encryption_key", help="Encrypt with this key")
def checkpoint_create(session_id: str, name: str, description: str | None,
                      tags: tuple[str, ...], priority: str | None, encryption_key: str | None):
    """Checkpoint a session's saved workspace state."""
    options = CheckpointCreateOptions(
        description=description,
        tags=list(tags),
        priority=priority,
        encrypt_data=encryption_key is not None,
        encryption_key=encryption_key,
    )

    async def action(store: SessionStore) -> CheckpointId:
        await _open_session(store, session_id)
        return await store.create_checkpoint(name, options)

    checkpoint_id = _run(action)
    console.print(f"[green]✓[/green] Created checkpoint: {checkpoint_id}")


@checkpoint.command("restore")
@click.argument("checkpoint_id")
@click.option("--backup", is_flag=True, help="Back up the current state first")
@click.option("--backup-name", help="Name for the backup checkpoint")
@click.option("--key", "encryption_key", help="Decryption key")
def checkpoint_restore(checkpoint_id: str, backup: bool, backup_name: str | None,
                       encryption_key: str | None):
    """Restore a checkpoint."""
    options = CheckpointRestoreOptions(
        encryption_key=encryption_key,
        create_backup=backup,
        backup_name=backup_name,
    )

    async def action(store: SessionStore):
        await store.restore_checkpoint(CheckpointId(checkpoint_id), options)
        return store.state.current_session

    restored = _run(action)
    console.print(f"[green]✓[/green] Restored checkpoint {checkpoint_id} into session {restored.id}")


@checkpoint.command("rm")
@click.argument("checkpoint_id")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation")
def checkpoint_rm(checkpoint_id: str, force: bool):
    """Delete a checkpoint."""
    if not force:
        if not click.confirm(f"Delete checkpoint '{checkpoint_id}'?"):
            console.print("Cancelled.")
            return

    _run(lambda store: store.delete_checkpoint(CheckpointId(checkpoint_id)))
    console.print(f"[green]✓[/green] Deleted checkpoint: {checkpoint_id}")


@checkpoint.command("edit")
@click.argument("checkpoint_id")
@click.option("--name", help="New name")
@click.option("--description", "-d", help="New description")
@click.option("--tag", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--priority", "-p", type=click.Choice(list(PRIORITIES)), default=None)
def checkpoint_edit(checkpoint_id: str, name: str | None, description: str | None,
                    tags: tuple[str, ...], priority: str | None):
    """Edit checkpoint metadata."""
    updates = CheckpointMetadataUpdates(
        name=name,
        description=description,
        tags=list(tags) if tags else None,
        priority=priority,
    )
    if not updates.to_dict():
        console.print("[yellow]Nothing to update[/yellow]")
        return

    _run(lambda store: store.update_checkpoint_metadata(CheckpointId(checkpoint_id), updates))
    console.print(f"[green]✓[/green] Updated checkpoint: {checkpoint_id}")


# ============================================================================
# Configuration
# ============================================================================


@main.group()
def config():
    """Manage configuration.

    sessionkit has two config files:
    - config.yaml: Connection settings (api_base_url, api_token, request_timeout)
    - tuning.yaml: Defaults (auto_save_interval, checkpoint_limit, etc.)
    """
    pass


@config.command("list")
def config_list():
    """Show current configuration."""
    try:
        cfg = Config.load()
        effective = get_sessionkit_config()
    except ConfigurationError as e:
        console.print(f"[red]{format_error(e)}[/red]")
        sys.exit(1)
    defaults = SessionKitConfig()

    console.print("[bold]Connection[/bold] [dim](~/.sessionkit/config.yaml)[/dim]")
    console.print()
    token_display = "[not set]"
    if cfg.api_token:
        token_display = "*" * 12 + cfg.api_token[-4:]
    console.print(f"  api_base_url: {cfg.api_base_url}")
    console.print(f"  api_token: {token_display}")
    console.print(f"  request_timeout: {cfg.request_timeout}")

    console.print()
    console.print("[bold]Tuning[/bold] [dim](tuning.yaml)[/dim]")
    console.print()
    for key, value in effective.to_dict().items():
        _show_tuning_value(key, value, getattr(defaults, key))

    console.print()
    console.print("[dim]sessionkit config set KEY VALUE            Set a value[/dim]")
    console.print("[dim]sessionkit config set KEY VALUE --project  Set project-level[/dim]")
    console.print("[dim]sessionkit config reset                    Reset tuning to defaults[/dim]")


def _coerce(value: str, field_type: Any) -> Any:
    if field_type is bool:
        lowered = value.lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
        raise ValueError(f"Invalid boolean value: {value}")
    if field_type is int:
        return int(value)
    if field_type is float:
        return float(value)
    return value


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--project", is_flag=True, help="Set in project-level config")
def config_set(key: str, value: str, project: bool):
    """Set a configuration value.

    Examples:
        sessionkit config set api_base_url https://sessions.example.com
        sessionkit config set auto_save_interval 60000
        sessionkit config set checkpoint_limit 50 --project
    """
    config_dir = Path.cwd() / ".sessionkit" if project else SESSIONKIT_DIR
    connection_keys = {"api_base_url", "api_token", "request_timeout"}
    tuning_fields = SessionKitConfig.__dataclass_fields__

    key = key.replace("-", "_")

    try:
        if key in connection_keys:
            cfg = Config.load()
            if key == "request_timeout":
                timeout = float(value)
                if timeout <= 0:
                    raise ConfigurationError(f"request_timeout must be positive, got {timeout}")
                cfg.request_timeout = timeout
            else:
                setattr(cfg, key, value)
            cfg.save()
            console.print(f"[green]✓[/green] Set {key} (connection config)")

        elif key in tuning_fields:
            tuning = SessionKitConfig.load(config_dir) if project else get_sessionkit_config()
            current = tuning.to_dict()
            current[key] = _coerce(value, tuning_fields[key].type)
            SessionKitConfig(**current).save(config_dir)
            location = "project" if project else "user"
            console.print(f"[green]✓[/green] Set {key} = {current[key]} ({location}-level tuning)")

        else:
            console.print(f"[red]Unknown config key: {key}[/red]")
            console.print()
            console.print(f"[dim]Connection keys: {', '.join(sorted(connection_keys))}[/dim]")
            console.print(f"[dim]Tuning keys: {', '.join(tuning_fields)}[/dim]")
            sys.exit(1)
    except (ValueError, OSError) as e:
        console.print(f"[red]{format_error(e)}[/red]")
        sys.exit(1)


@config.command("reset")
@click.option("--project", is_flag=True, help="Reset project-level config")
def config_reset(project: bool):
    """Reset tuning configuration to defaults."""
    config_dir = Path.cwd() / ".sessionkit" if project else SESSIONKIT_DIR
    SessionKitConfig().save(config_dir)
    location = "project" if project else "user"
    console.print(f"[green]✓[/green] Reset tuning config to defaults ({location}-level)")


def _show_tuning_value(key: str, value, default):
    """Display a tuning value, highlighting if non-default."""
    if value != default:
        console.print(f"  {key}: [cyan]{value}[/cyan] [dim](default: {default})[/dim]")
    else:
        console.print(f"  {key}: {value}")


if __name__ == "__main__":
    main()
