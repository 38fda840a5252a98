"""Fire-and-forget background tasks with per-task error capture."""

import asyncio
from typing import Any, Coroutine

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTaskRunner:
    """Runs side-effect coroutines detached from the request that started them.

    Each task carries its own exception handler, so a failure is logged
    and never reaches the caller. The runner keeps strong references until
    tasks finish, and ``drain`` waits for stragglers at shutdown.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str = "background_task") -> None:
        """Schedule ``coro`` on the running loop and return immediately."""
        task = asyncio.create_task(self._guarded(coro, name), name=name)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @staticmethod
    async def _guarded(coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.warning("background_task_cancelled", task=name)
            raise
        except Exception as e:
            logger.error(
                "background_task_failed",
                task=name,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for pending tasks, up to ``timeout`` seconds."""
        if not self._pending:
            return

        logger.info("draining_background_tasks", count=len(self._pending))
        try:
            await asyncio.wait_for(
                asyncio.gather(*self._pending, return_exceptions=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "background_tasks_drain_timeout",
                remaining=len(self._pending),
                timeout=timeout,
            )
