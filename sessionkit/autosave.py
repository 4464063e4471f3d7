"""Periodic auto-save for the session store.

The scheduler owns a single asyncio task. ``start()`` always cancels the
previous task before creating a new one, so repeated starts never stack
timers. There is no catch-up: a tick that runs long simply delays the next.

Each tick's outcome is recorded in ``last_outcome`` and passed to the
``on_outcome`` callback so repeated failures are visible to callers.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from sessionkit.config import validate_auto_save_interval
from sessionkit.events import AutoSaveFailed, AutoSaveOutcome, AutoSaveSucceeded

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 30000
DEFAULT_FAILURE_THRESHOLD = 3


class AutoSaveScheduler:
    """Calls ``save`` every ``interval_ms`` milliseconds while running.

    Args:
        save: Async callable returning True on success, False on failure
        interval_ms: Default period in milliseconds
        on_outcome: Called with an AutoSaveSucceeded / AutoSaveFailed per tick
        failure_warning_threshold: Consecutive failures before a warning is logged
    """

    def __init__(
        self,
        save: Callable[[], Awaitable[bool]],
        interval_ms: int = DEFAULT_INTERVAL_MS,
        on_outcome: Callable[[AutoSaveOutcome], None] | None = None,
        failure_warning_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ):
        self._save = save
        self.interval_ms = validate_auto_save_interval(interval_ms)
        self.on_outcome = on_outcome
        self.failure_warning_threshold = failure_warning_threshold
        self.last_outcome: AutoSaveOutcome | None = None
        self.consecutive_failures = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_ms: int | None = None) -> None:
        """Start (or restart) the timer. Requires a running event loop.

        Raises:
            ConfigurationError: If interval_ms is not a positive integer
        """
        if interval_ms is not None:
            self.interval_ms = validate_auto_save_interval(interval_ms)
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(self.interval_ms))
        logger.debug(f"Auto-save started every {self.interval_ms}ms")

    def stop(self) -> None:
        """Cancel the timer. Safe to call when not running."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Auto-save stopped")

    async def _run(self, interval_ms: int) -> None:
        while True:
            await asyncio.sleep(interval_ms / 1000)
            await self.tick()

    async def tick(self) -> AutoSaveOutcome:
        """Run one save and record its outcome."""
        error: str | None = None
        try:
            saved = await self._save()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Auto-save raised: {e}")
            saved = False
            error = str(e)

        now = datetime.now(UTC)
        if saved:
            self.consecutive_failures = 0
            outcome: AutoSaveOutcome = AutoSaveSucceeded(timestamp=now)
        else:
            self.consecutive_failures += 1
            outcome = AutoSaveFailed(
                timestamp=now,
                consecutive_failures=self.consecutive_failures,
                error=error,
            )
            if self.consecutive_failures == self.failure_warning_threshold:
                logger.warning(
                    f"Auto-save has failed {self.consecutive_failures} times in a row"
                )

        self.last_outcome = outcome
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome
