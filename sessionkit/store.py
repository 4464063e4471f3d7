"""Session state store.

``SessionStore`` owns the current session, its workspace state, the
dirty flag, the loaded checkpoint list, and the checkpoint form draft.
It validates input, calls the persistence gateway, and applies the
server's answers to its state.

State is only changed between awaits, so each update is atomic with
respect to other tasks on the loop. Concurrency rules per operation:

- create_checkpoint, restore_checkpoint, create_new_session: a second
  concurrent call raises OperationInProgressError
- save_session: a concurrent call joins the in-flight save
- restore_session: a concurrent call returns False

Error rules:

- save_session and restore_session log failures and return False
- everything else raises to the caller
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from sessionkit.autosave import AutoSaveScheduler
from sessionkit.config import SessionKitConfig, validate_auto_save_interval
from sessionkit.errors import NoActiveSessionError, SessionKitError, ValidationError
from sessionkit.events import (
    AutoSaveOutcome,
    CheckpointCreated,
    CheckpointDeleted,
    CheckpointRestored,
    SessionCreated,
    SessionRestored,
    SessionSaved,
    StoreEvent,
)
from sessionkit.flight import SingleFlight
from sessionkit.gateway import PersistenceGateway
from sessionkit.models import (
    CheckpointCreateOptions,
    CheckpointMetadataUpdates,
    CheckpointRestoreOptions,
    FilterOverride,
    NewSessionConfig,
    Session,
    SessionRestoreOptions,
    SessionSaveOptions,
    SessionState,
    WorkspaceState,
)
from sessionkit.persistence import (
    PersistedState,
    StateStorage,
    load_persisted_state,
    save_persisted_state,
)
from sessionkit.types import CheckpointId, SessionId
from sessionkit.validation import (
    validate_checkpoint_metadata,
    validate_checkpoint_name,
    validate_checkpoint_priority,
    validate_checkpoint_tags,
    validate_session_data,
)

logger = logging.getLogger(__name__)

StoreListener = Callable[[StoreEvent], None]


def _now() -> datetime:
    return datetime.now(UTC)


class SessionStore:
    """Authoritative client-side state for one workspace session.

    Args:
        gateway: Persistence gateway (or any object with the same methods)
        storage: Where the persisted preference subset lives; None disables it
        config: Tuning defaults for auto-save, listing, and priorities

    Example:
        async with SessionStore(PersistenceGateway(Config.load())) as store:
            await store.create_new_session(new_config)
            store.update_workspace_state({"open_files": files})
            await store.create_checkpoint("Before refactor")
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        storage: StateStorage | None = None,
        config: SessionKitConfig | None = None,
    ):
        self.gateway = gateway
        self.storage = storage
        self.config = config or SessionKitConfig()

        self._state = SessionState(
            auto_save_enabled=self.config.auto_save_enabled,
            auto_save_interval=self.config.auto_save_interval,
            checkpoint_filter=self.config.default_filter(),
            checkpoint_priority=self.config.checkpoint_priority,
        )
        if storage is not None:
            persisted = load_persisted_state(storage)
            if persisted is not None:
                self._state.auto_save_enabled = persisted.auto_save_enabled
                self._state.auto_save_interval = persisted.auto_save_interval
                self._state.checkpoint_filter = persisted.checkpoint_filter

        self._flight = SingleFlight()
        self._listeners: list[StoreListener] = []
        self.scheduler = AutoSaveScheduler(
            self.save_session,
            interval_ms=self._state.auto_save_interval,
            on_outcome=self._on_auto_save,
            failure_warning_threshold=self.config.auto_save_failure_threshold,
        )

    async def __aenter__(self) -> "SessionStore":
        self.sync_auto_save()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop auto-save and close the gateway."""
        self.scheduler.stop()
        await self.gateway.aclose()

    @property
    def state(self) -> SessionState:
        return self._state

    # ========================================================================
    # Events
    # ========================================================================

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener for store events. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Store listener failed on {type(event).__name__}: {e}")

    def _on_auto_save(self, outcome: AutoSaveOutcome) -> None:
        self._state.last_auto_save = outcome
        self._emit(outcome)

    # ========================================================================
    # Session and workspace state
    # ========================================================================

    def set_current_session(self, session: Session | None) -> None:
        self._state.current_session = session

    def set_workspace_state(self, workspace_state: WorkspaceState | None) -> None:
        self._state.workspace_state = workspace_state
        self._state.is_dirty = True

    def update_workspace_state(self, partial: dict[str, Any]) -> None:
        """Shallow-merge keys into the workspace state and mark it dirty.

        With no workspace state yet, the state stays None.
        """
        current = self._state.workspace_state
        self._state.workspace_state = current.merge(partial) if current is not None else None
        self._state.is_dirty = True

    def set_dirty(self, dirty: bool) -> None:
        self._state.is_dirty = dirty

    def clear_session(self) -> None:
        """Forget the current session, its workspace, and its checkpoints."""
        self._state.current_session = None
        self._state.workspace_state = None
        self._state.is_dirty = False
        self._state.last_saved = None
        self._state.checkpoints = []

    def _apply_restored(self, session: Session, workspace_state: WorkspaceState) -> None:
        self._state.current_session = session
        self._state.workspace_state = workspace_state
        self._state.is_dirty = False
        self._state.last_saved = _now()

    async def save_session(self, options: SessionSaveOptions | None = None) -> bool:
        """Persist the workspace state if dirty (or forced).

        Returns:
            True if saved or nothing needed saving, False on failure or
            when there is no session to save
        """
        options = options or SessionSaveOptions()
        if not self._state.is_dirty and not options.force:
            logger.debug("Session clean, skipping save")
            return True

        session = self._state.current_session
        try:
            validate_session_data(session.id if session else None, self._state.workspace_state)
        except ValidationError as e:
            logger.debug(f"Nothing to save: {e}")
            return False

        return await self._flight.join("save_session", lambda: self._save_session(options))

    async def _save_session(self, options: SessionSaveOptions) -> bool:
        session = self._state.current_session
        workspace_state = self._state.workspace_state
        if session is None or workspace_state is None:
            return False

        try:
            saved = await self.gateway.save_session(session.id, workspace_state, options)
        except SessionKitError as e:
            logger.warning(f"Failed to save session {session.id}: {e}")
            return False

        self._state.current_session = saved
        # Edits made while the request was in flight stay dirty
        if self._state.workspace_state is workspace_state:
            self._state.is_dirty = False
        self._state.last_saved = _now()
        self._emit(SessionSaved(timestamp=_now(), session_id=saved.id))
        return True

    async def restore_session(
        self,
        session_id: SessionId,
        options: SessionRestoreOptions | None = None,
    ) -> bool:
        """Load a session from the server and make it current.

        A failed checkpoint reload after the session has been applied is
        logged and does not change the result.

        Returns:
            True once the session is current, False if the restore failed
            or another restore_session call is in flight
        """
        try:
            result = await self._flight.reject(
                "restore_session",
                lambda: self.gateway.restore_session(session_id, options),
            )
        except SessionKitError as e:
            logger.warning(f"Failed to restore session {session_id}: {e}")
            return False

        self._apply_restored(result.session, result.workspace_state)
        try:
            await self.load_checkpoints({"session_id": result.session.id})
        except SessionKitError as e:
            logger.warning(f"Restored session {result.session.id} but could not load checkpoints: {e}")

        logger.info(f"Restored session {result.session.id}")
        self._emit(SessionRestored(timestamp=_now(), session_id=result.session.id))
        return True

    async def create_new_session(self, config: NewSessionConfig) -> SessionId:
        """Create a session on the server and make it current.

        Raises:
            GatewayError: If the server rejects the request
            OperationInProgressError: If another create is in flight
        """
        session = await self._flight.reject(
            "create_session", lambda: self.gateway.create_session(config)
        )
        self._state.current_session = session
        self._state.workspace_state = config.workspace_state
        self._state.is_dirty = False
        self._state.last_saved = _now()
        self._state.checkpoints = []

        logger.info(f"Created session {session.id} ({session.name})")
        self._emit(SessionCreated(timestamp=_now(), session_id=session.id))
        return session.id

    # ========================================================================
    # Checkpoints
    # ========================================================================

    async def create_checkpoint(
        self,
        name: str,
        options: CheckpointCreateOptions | None = None,
    ) -> CheckpointId:
        """Create a checkpoint of the current workspace state.

        Validation runs before any request, so invalid input never sets
        is_creating_checkpoint. After the server accepts the checkpoint,
        the list is reloaded for the current session and the form draft
        is reset.

        Raises:
            NoActiveSessionError: Without a current session and workspace state
            ValidationError: For an invalid name, priority, or tags
            OperationInProgressError: If another create is in flight
            GatewayError: If the server rejects the request
        """
        session = self._state.current_session
        workspace_state = self._state.workspace_state
        if session is None or workspace_state is None:
            raise NoActiveSessionError()

        options = options or CheckpointCreateOptions()
        validate_checkpoint_name(name)
        if options.priority is not None:
            validate_checkpoint_priority(options.priority)
        else:
            options = replace(options, priority=self.config.checkpoint_priority)
        if options.tags is not None:
            validate_checkpoint_tags(options.tags)

        checkpoint_id = await self._flight.reject(
            "create_checkpoint",
            lambda: self._create_checkpoint(session, workspace_state, name, options),
        )

        self.reset_checkpoint_form()
        logger.info(f"Created checkpoint {checkpoint_id} ({name})")
        self._emit(
            CheckpointCreated(timestamp=_now(), checkpoint_id=checkpoint_id, session_id=session.id)
        )
        return checkpoint_id

    async def _create_checkpoint(
        self,
        session: Session,
        workspace_state: WorkspaceState,
        name: str,
        options: CheckpointCreateOptions,
    ) -> CheckpointId:
        self._state.is_creating_checkpoint = True
        try:
            checkpoint_id = await self.gateway.create_checkpoint(
                session.id, name, workspace_state, options
            )
            await self.load_checkpoints({"session_id": session.id})
            return checkpoint_id
        finally:
            self._state.is_creating_checkpoint = False

    async def load_checkpoints(self, override: FilterOverride | None = None) -> None:
        """Fetch checkpoints using the stored filter merged with override.

        On success both the list and the stored filter are replaced.
        """
        merged = self._state.checkpoint_filter.merge(override)
        self._state.is_loading_checkpoints = True
        try:
            checkpoints = await self.gateway.load_checkpoints(merged)
            self._state.checkpoints = checkpoints
            self._state.checkpoint_filter = merged
        finally:
            self._state.is_loading_checkpoints = False

        logger.debug(f"Loaded {len(checkpoints)} checkpoints")
        self._persist()

    async def restore_checkpoint(
        self,
        checkpoint_id: CheckpointId,
        options: CheckpointRestoreOptions | None = None,
    ) -> bool:
        """Restore a checkpoint into the current session.

        The server may answer with a different session (for example a
        backup); checkpoints are reloaded for whichever session is now
        current. Gateway errors propagate with their original message.

        Raises:
            OperationInProgressError: If another restore is in flight
            GatewayError: If the server rejects the request
        """
        restored = await self._flight.reject(
            "restore_checkpoint",
            lambda: self._restore_checkpoint(checkpoint_id, options),
        )
        logger.info(f"Restored checkpoint {checkpoint_id} into session {restored.id}")
        self._emit(
            CheckpointRestored(timestamp=_now(), checkpoint_id=checkpoint_id, session_id=restored.id)
        )
        return True

    async def _restore_checkpoint(
        self,
        checkpoint_id: CheckpointId,
        options: CheckpointRestoreOptions | None,
    ) -> Session:
        self._state.is_restoring_checkpoint = True
        try:
            result = await self.gateway.restore_checkpoint(checkpoint_id, options)
            self._apply_restored(result.session, result.workspace_state)
            await self.load_checkpoints({"session_id": result.session.id})
            return result.session
        finally:
            self._state.is_restoring_checkpoint = False

    async def delete_checkpoint(self, checkpoint_id: CheckpointId) -> None:
        """Delete a checkpoint on the server and drop it from the list."""
        await self.gateway.delete_checkpoint(checkpoint_id)
        self._state.checkpoints = [c for c in self._state.checkpoints if c.id != checkpoint_id]
        logger.info(f"Deleted checkpoint {checkpoint_id}")
        self._emit(CheckpointDeleted(timestamp=_now(), checkpoint_id=checkpoint_id))

    async def update_checkpoint_metadata(
        self,
        checkpoint_id: CheckpointId,
        updates: CheckpointMetadataUpdates,
    ) -> None:
        """Update name, description, tags, or priority of a checkpoint.

        The local copy is replaced with the server's answer.

        Raises:
            ValidationError: For an invalid name, priority, or tags
            GatewayError: If the server rejects the request
        """
        validate_checkpoint_metadata(updates.name, updates.priority, updates.tags)
        updated = await self.gateway.update_checkpoint_metadata(checkpoint_id, updates)
        self._state.checkpoints = [
            updated if c.id == checkpoint_id else c for c in self._state.checkpoints
        ]

    # ========================================================================
    # Checkpoint form draft
    # ========================================================================

    def set_checkpoint_form(
        self,
        name: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
        priority: str | None = None,
    ) -> None:
        """Update draft fields. Fields left as None keep their value."""
        if name is not None:
            self._state.checkpoint_name = name
        if description is not None:
            self._state.checkpoint_description = description
        if tags is not None:
            self._state.checkpoint_tags = list(tags)
        if priority is not None:
            self._state.checkpoint_priority = priority

    def reset_checkpoint_form(self) -> None:
        self._state.checkpoint_name = ""
        self._state.checkpoint_description = ""
        self._state.checkpoint_tags = []
        self._state.checkpoint_priority = self.config.checkpoint_priority

    # ========================================================================
    # Auto-save
    # ========================================================================

    def set_auto_save(self, enabled: bool, interval: int | None = None) -> None:
        """Enable or disable auto-save, optionally changing the interval.

        Raises:
            ConfigurationError: If interval is not a positive integer
        """
        if interval is not None:
            validate_auto_save_interval(interval)
            self._state.auto_save_interval = interval
        self._state.auto_save_enabled = enabled
        self._persist()
        self.sync_auto_save()

    def sync_auto_save(self) -> None:
        """Start or stop the scheduler to match auto_save_enabled.

        Outside a running event loop this does nothing; call it again
        (or enter the store with ``async with``) once a loop is running.
        """
        if not self._state.auto_save_enabled:
            self.scheduler.stop()
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, auto-save not started")
            return

        if not self.scheduler.running or self.scheduler.interval_ms != self._state.auto_save_interval:
            self.start_auto_save()

    def start_auto_save(self) -> None:
        self.scheduler.start(self._state.auto_save_interval)

    def stop_auto_save(self) -> None:
        self.scheduler.stop()

    def _persist(self) -> None:
        if self.storage is None:
            return
        save_persisted_state(
            self.storage,
            PersistedState(
                auto_save_enabled=self._state.auto_save_enabled,
                auto_save_interval=self._state.auto_save_interval,
                checkpoint_filter=self._state.checkpoint_filter,
            ),
        )
