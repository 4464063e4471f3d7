"""Shared fixtures for sessionkit tests."""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from sessionkit.errors import GatewayError
from sessionkit.models import (
    Checkpoint,
    CheckpointFilter,
    RestoreResult,
    Session,
    WorkspaceState,
)
from sessionkit.persistence import MemoryStateStorage
from sessionkit.types import CheckpointId, SessionId, UserId, WorkspaceId

BASE_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


async def settle() -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)


def make_session(session_id: str = "session-1", **overrides) -> Session:
    fields = {
        "id": SessionId(session_id),
        "user_id": UserId("user-1"),
        "workspace_id": WorkspaceId("workspace-1"),
        "name": "Test Session",
        "is_active": True,
        "created_at": BASE_TIME,
        "last_saved_at": BASE_TIME,
        "checkpoint_count": 0,
        "total_size": 0,
    }
    fields.update(overrides)
    return Session(**fields)


def make_checkpoint(checkpoint_id: str = "cp-1", **overrides) -> Checkpoint:
    fields = {
        "id": CheckpointId(checkpoint_id),
        "session_id": SessionId("session-1"),
        "name": "Checkpoint",
        "description": None,
        "tags": (),
        "priority": "medium",
        "created_at": BASE_TIME,
        "compressed_size": 1024,
        "uncompressed_size": 4096,
    }
    fields.update(overrides)
    return Checkpoint(**fields)


class FakeGateway:
    """In-memory stand-in for PersistenceGateway.

    Records every call as (method, args) in ``calls``. Set ``fail`` to a
    method name to make that method raise GatewayError. Set a gate
    (asyncio.Event) to hold a method until the test releases it.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.checkpoints: list[Checkpoint] = []
        self.fail: dict[str, str] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.next_checkpoint_id = "cp-new"
        self.restore_result: RestoreResult | None = None
        self.closed = False

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        if method in self.fail:
            raise GatewayError(self.fail[method], status_code=500)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def aclose(self) -> None:
        self.closed = True

    async def create_checkpoint(self, session_id, name, workspace_state, options=None):
        await self._enter("create_checkpoint", session_id, name, workspace_state, options)
        return CheckpointId(self.next_checkpoint_id)

    async def load_checkpoints(self, filter: CheckpointFilter | None = None):
        await self._enter("load_checkpoints", filter)
        return list(self.checkpoints)

    async def restore_checkpoint(self, checkpoint_id, options=None):
        await self._enter("restore_checkpoint", checkpoint_id, options)
        return self.restore_result

    async def delete_checkpoint(self, checkpoint_id):
        await self._enter("delete_checkpoint", checkpoint_id)

    async def update_checkpoint_metadata(self, checkpoint_id, updates):
        await self._enter("update_checkpoint_metadata", checkpoint_id, updates)
        original = next(c for c in self.checkpoints if c.id == checkpoint_id)
        changes = updates.to_dict()
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"])
        return replace(original, **changes)

    async def save_session(self, session_id, workspace_state, options=None):
        await self._enter("save_session", session_id, workspace_state, options)
        return make_session(session_id, last_saved_at=BASE_TIME + timedelta(minutes=5))

    async def restore_session(self, session_id, options=None):
        await self._enter("restore_session", session_id, options)
        if self.restore_result is not None:
            return self.restore_result
        return RestoreResult(session=make_session(session_id), workspace_state=WorkspaceState())

    async def create_session(self, config):
        await self._enter("create_session", config)
        return make_session("session-1", name=config.name)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def storage() -> MemoryStateStorage:
    return MemoryStateStorage()


@pytest.fixture
def sample_checkpoints() -> list[Checkpoint]:
    """Five checkpoints with distinct names, descriptions, and tags."""
    return [
        make_checkpoint(
            "cp-1",
            name="Database Migration",
            description="Schema update for users table",
            tags=("database", "migration", "critical"),
            priority="high",
            created_at=BASE_TIME,
            compressed_size=2048,
        ),
        make_checkpoint(
            "cp-2",
            name="UI Update",
            description="New dashboard design",
            tags=("ui", "frontend"),
            priority="low",
            created_at=BASE_TIME + timedelta(days=1),
            compressed_size=512,
        ),
        make_checkpoint(
            "cp-3",
            name="Bug Fix",
            description="Fixed authentication issue",
            tags=("bug", "auth", "hotfix"),
            priority="high",
            created_at=BASE_TIME + timedelta(days=2),
            compressed_size=1024,
        ),
        make_checkpoint(
            "cp-4",
            name="Performance",
            description="Optimized queries",
            tags=("performance", "database"),
            priority="medium",
            created_at=BASE_TIME + timedelta(days=3),
            compressed_size=4096,
        ),
        make_checkpoint(
            "cp-5",
            name="Security Patch",
            description=None,
            tags=("security", "critical"),
            priority="medium",
            created_at=BASE_TIME + timedelta(days=4),
            compressed_size=256,
        ),
    ]
