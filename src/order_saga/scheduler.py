import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set


class TaskScheduler:
    """
    Runs delayed saga steps as independent asyncio tasks.

    A handler that has to wait (for a carrier, for a delivery) registers its
    continuation here instead of sleeping inside `publish`. On `shutdown()` every
    pending task is cancelled, and a task that wakes up after shutdown began
    does not run its action, so nothing mutates state or publishes after
    teardown starts.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        delay: float,
        action: Callable[[], Awaitable[None]],
        *,
        name: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        if self._closed:
            logging.warning(f"Scheduler is shut down, dropping {name or 'task'}")
            return None
        task = asyncio.create_task(self._run(delay, action, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, delay: float, action: Callable[[], Awaitable[None]], name: Optional[str]):
        await asyncio.sleep(delay)
        if self._closed:
            return
        try:
            await action()
        except Exception as e:
            logging.error(f"Scheduled task {name or action!r} failed: {e!r}", exc_info=e)

    async def join(self):
        """Waits until no task is pending, including tasks scheduled by other tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Revokes every pending task and waits for the cancellations to land."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logging.info(f"Scheduler stopped, {len(tasks)} pending task(s) cancelled")
