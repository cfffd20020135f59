"""
Background task queue for best-effort persistence (search traces).

Jobs run one at a time on a single worker task. ``drain()`` waits until every
submitted job has finished, which gives tests and shutdown a flush point.
"""
from typing import Awaitable, Callable, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]

class BackgroundTaskQueue:
    def __init__(self, name: str = "background"):
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.stats = {"submitted": 0, "completed": 0, "failed": 0}

    def _ensure_worker(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name=f"{self.name}-worker")
        return self._queue

    async def _run(self):
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await job()
                self.stats["completed"] += 1
            except Exception as e:
                self.stats["failed"] += 1
                logger.error(f"[{self.name}] background job failed: {e}")
            finally:
                queue.task_done()

    def submit(self, job: Job) -> None:
        """Schedule ``job`` without waiting for it. Must be called from a running loop."""
        self._ensure_worker().put_nowait(job)
        self.stats["submitted"] += 1

    async def drain(self) -> None:
        """Wait for every submitted job to finish"""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain outstanding jobs, then stop the worker"""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._queue = None
