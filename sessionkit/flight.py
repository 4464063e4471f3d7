"""Single-flight guard for store operations.

Tracks one in-flight asyncio task per operation key. A second call for
the same key either joins the running task (``join``) or is rejected
with OperationInProgressError (``reject``).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sessionkit.errors import OperationInProgressError

logger = logging.getLogger(__name__)


class SingleFlight:
    """Per-key in-flight task registry."""

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task] = {}

    def in_progress(self, key: str) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def reject(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run factory() unless key is already running.

        Raises:
            OperationInProgressError: If a call for key is still in flight
        """
        if self.in_progress(key):
            raise OperationInProgressError(key)
        return await self._run(key, factory)

    async def join(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run factory(), or await the in-flight call for key and share its result."""
        task = self._inflight.get(key)
        if task is not None and not task.done():
            logger.debug(f"Joining in-flight {key}")
            return await asyncio.shield(task)
        return await self._run(key, factory)

    async def _run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]
