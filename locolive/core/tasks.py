import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TaskSupervisor:
    """Owns detached background work spawned by requests.

    Work scheduled here outlives the request that started it, but not the
    process: ``shutdown`` gives it a bounded grace period and then cancels it.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task | None:
        if self._closed:
            logger.warning("Task supervisor is shut down; dropping task %s", name)
            coro.close()
            return None
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait until every task spawned so far (and any they spawn) finishes."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            done, _ = await asyncio.wait(set(self._tasks), timeout=remaining)
            if not done and remaining == 0:
                break

    async def shutdown(self, grace_seconds: float) -> None:
        self._closed = True
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("Waiting up to %.1fs for %d background task(s)", grace_seconds, len(pending))
        _, still_running = await asyncio.wait(pending, timeout=grace_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d background task(s) after grace period", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
