"""Persistence gateway: async HTTP client for the session and checkpoint APIs.

Every method maps to one REST call. Successful responses wrap their
payload as ``{"data": ...}``; failures carry ``{"error": "..."}``, which
becomes the GatewayError message. When the body has no usable error
text, an operation-specific default message is used instead.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from sessionkit.config import Config
from sessionkit.errors import GatewayError
from sessionkit.models import (
    DEFAULT_PRIORITY,
    Checkpoint,
    CheckpointCreateOptions,
    CheckpointFilter,
    CheckpointMetadataUpdates,
    CheckpointRestoreOptions,
    NewSessionConfig,
    RestoreResult,
    Session,
    SessionRestoreOptions,
    SessionSaveOptions,
    WorkspaceState,
)
from sessionkit.types import CheckpointId, SessionId

logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_API_BASE = "/api/sessions/v1"
CHECKPOINT_API_BASE = "/api/checkpoints/v1"


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _error_message(response: httpx.Response, default_message: str) -> str:
    """Pull ``error`` out of a failed response body, else the default."""
    try:
        body = response.json()
    except ValueError:
        return default_message
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
        return body["error"]
    return default_message


def _parse(path: str, parse: Callable[[Any], T], data: Any) -> T:
    """Build a model from a reply's ``data``, as a GatewayError if it does not fit."""
    try:
        return parse(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Unexpected data from {path}: {e!r}")
        raise GatewayError(
            f"Malformed response from {path}: {e!r}",
            context={"path": path},
        ) from e


class PersistenceGateway:
    """Async client for /api/sessions/v1 and /api/checkpoints/v1.

    Use as an async context manager, or call ``aclose()`` when done. A
    client passed in by the caller is left open.

    Example:
        async with PersistenceGateway(Config.load()) as gateway:
            session = await gateway.create_session(new_config)
    """

    def __init__(
        self,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or Config()
        self._owns_client = client is None
        if client is None:
            headers = {"Accept": "application/json"}
            if self.config.api_token:
                headers["Authorization"] = f"Bearer {self.config.api_token}"
            client = httpx.AsyncClient(
                base_url=self.config.api_base_url,
                timeout=self.config.request_timeout,
                headers=headers,
                transport=transport,
            )
        self.client = client

    async def __aenter__(self) -> "PersistenceGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        default_message: str,
        *,
        json: dict[str, Any] | None = None,
        params: list[tuple[str, str]] | None = None,
    ) -> Any:
        """Send one request and return the ``data`` member of the reply.

        Raises:
            GatewayError: On transport failure, non-2xx status, or a reply
                without ``data``
        """
        logger.debug(f"{method} {path}")
        try:
            response = await self.client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise GatewayError(
                f"{default_message}: request timed out",
                context={"method": method, "path": path},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise GatewayError(
                f"{default_message}: {e}",
                context={"method": method, "path": path},
            ) from e

        if not response.is_success:
            message = _error_message(response, default_message)
            logger.debug(f"{method} {path} -> {response.status_code}: {message}")
            raise GatewayError(
                message,
                status_code=response.status_code,
                context={"method": method, "path": path},
            )

        if method == "DELETE":
            return None

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(
                f"Malformed response from {path}: body is not JSON",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict) or "data" not in body:
            raise GatewayError(
                f"Malformed response from {path}: missing data",
                status_code=response.status_code,
            )
        return body["data"]

    # ========================================================================
    # Checkpoints
    # ========================================================================

    async def create_checkpoint(
        self,
        session_id: SessionId,
        name: str,
        workspace_state: WorkspaceState,
        options: CheckpointCreateOptions | None = None,
    ) -> CheckpointId:
        """Create a checkpoint and return its server-assigned id."""
        options = options or CheckpointCreateOptions()
        payload = _drop_none(
            {
                "sessionId": session_id,
                "name": name,
                "description": options.description,
                "tags": list(options.tags or []),
                "priority": options.priority or DEFAULT_PRIORITY,
                "workspaceState": workspace_state.to_dict(),
                "encryptData": options.encrypt_data,
                "encryptionKey": options.encryption_key,
                "skipDuplicates": True,
            }
        )
        data = await self._request(
            "POST", CHECKPOINT_API_BASE, "Failed to create checkpoint", json=payload
        )
        return _parse(CHECKPOINT_API_BASE, lambda d: CheckpointId(d["id"]), data)

    async def load_checkpoints(self, filter: CheckpointFilter | None = None) -> list[Checkpoint]:
        """List checkpoints matching filter."""
        params = (filter or CheckpointFilter()).to_query_params()
        data = await self._request(
            "GET", CHECKPOINT_API_BASE, "Failed to load checkpoints", params=params
        )
        return _parse(
            CHECKPOINT_API_BASE,
            lambda d: [Checkpoint.from_dict(item) for item in d.get("checkpoints", [])],
            data,
        )

    async def restore_checkpoint(
        self,
        checkpoint_id: CheckpointId,
        options: CheckpointRestoreOptions | None = None,
    ) -> RestoreResult:
        """Restore a checkpoint, returning the resulting session and workspace."""
        options = options or CheckpointRestoreOptions()
        payload = _drop_none(
            {
                "encryptionKey": options.encryption_key,
                "createBackup": options.create_backup,
                "backupName": options.backup_name,
            }
        )
        path = f"{CHECKPOINT_API_BASE}/{checkpoint_id}/restore"
        data = await self._request("POST", path, "Failed to restore checkpoint", json=payload)
        return _parse(path, RestoreResult.from_dict, data)

    async def delete_checkpoint(self, checkpoint_id: CheckpointId) -> None:
        await self._request(
            "DELETE", f"{CHECKPOINT_API_BASE}/{checkpoint_id}", "Failed to delete checkpoint"
        )

    async def update_checkpoint_metadata(
        self,
        checkpoint_id: CheckpointId,
        updates: CheckpointMetadataUpdates,
    ) -> Checkpoint:
        """Apply a partial metadata update and return the server's copy."""
        path = f"{CHECKPOINT_API_BASE}/{checkpoint_id}"
        data = await self._request(
            "PUT", path, "Failed to update checkpoint", json=updates.to_dict()
        )
        return _parse(path, Checkpoint.from_dict, data)

    # ========================================================================
    # Sessions
    # ========================================================================

    async def save_session(
        self,
        session_id: SessionId,
        workspace_state: WorkspaceState,
        options: SessionSaveOptions | None = None,
    ) -> Session:
        """Persist workspace state; options are accepted but not sent."""
        path = f"{SESSION_API_BASE}/{session_id}"
        data = await self._request(
            "PUT",
            path,
            "Failed to save session",
            json={"workspaceState": workspace_state.to_dict()},
        )
        return _parse(path, Session.from_dict, data)

    async def restore_session(
        self,
        session_id: SessionId,
        options: SessionRestoreOptions | None = None,
    ) -> RestoreResult:
        path = f"{SESSION_API_BASE}/{session_id}"
        data = await self._request("GET", path, "Failed to restore session")
        return _parse(path, RestoreResult.from_dict, data)

    async def create_session(self, config: NewSessionConfig) -> Session:
        data = await self._request(
            "POST", SESSION_API_BASE, "Failed to create session", json=config.to_dict()
        )
        return _parse(SESSION_API_BASE, Session.from_dict, data)
