"""Single-worker FIFO queue for background work (fingerprinting, indexing, maintenance)."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple

from memoria.config import DEFAULT_TASK_DELAY_S

logger = logging.getLogger("memoria.tasks")

TaskFactory = Callable[[], Awaitable[object]]


class TaskQueue:
    """Runs queued coroutines one at a time, pausing ``delay`` seconds between them.

    Failures are logged and the queue moves on. Callers that need the work
    finished (tests, CLI one-shots) await :meth:`join`.
    """

    def __init__(self, delay: float = DEFAULT_TASK_DELAY_S):
        self.delay = delay
        self._queue: "asyncio.Queue[Tuple[str, TaskFactory]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.completed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def __len__(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="memoria-task-queue")

    def enqueue(self, name: str, factory: TaskFactory) -> None:
        self._queue.put_nowait((name, factory))
        logger.debug("Queued background task %s (%d pending)", name, self._queue.qsize())
        if not self.running:
            self.start()

    async def _run(self) -> None:
        while True:
            name, factory = await self._queue.get()
            try:
                await factory()
                self.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error("Background task %s failed: %s", name, e)
            finally:
                self._queue.task_done()
            if self.delay and not self._queue.empty():
                await asyncio.sleep(self.delay)

    async def join(self) -> None:
        """Wait until every queued task, including ones queued meanwhile, has run."""
        if not self.running and not self._queue.empty():
            self.start()
        await self._queue.join()

    async def stop(self) -> None:
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
