"""Bounded background writer for best-effort persistence."""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from memflow.core.config import PersistenceConfig

logger = structlog.get_logger()

Job = Callable[[], Awaitable[None]]


@dataclass
class DeadLetter:
    """A persistence job that could not be completed."""

    label: str
    error: str
    timestamp: float


class BackgroundWriter:
    """Runs persistence jobs off the caller's path.

    Jobs go through a bounded queue consumed by a single worker task, so
    writes for the same key land in submission order. Each job runs with a
    timeout and a bounded number of attempts. Jobs that fail, time out or
    are dropped because the queue is full end up in ``dead_letters``.

    Example:
        ```python
        writer = BackgroundWriter()

        writer.submit("tier:short_term", lambda: store.set(key, payload))

        await writer.drain()
        await writer.close()
        ```
    """

    def __init__(self, config: Optional[PersistenceConfig] = None):
        self.config = config or PersistenceConfig()
        self.dead_letters: deque[DeadLetter] = deque(maxlen=self.config.dead_letter_size)
        self.completed = 0

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def submit(self, label: str, job: Job) -> bool:
        """Queue a job without waiting for it.

        Returns False when the job was dropped. Never raises.
        """
        try:
            self._ensure_worker()
        except RuntimeError as e:
            self._dead_letter(label, f"no running event loop: {e}")
            return False

        try:
            self._queue.put_nowait((label, job))
        except asyncio.QueueFull:
            self._dead_letter(label, "queue full")
            return False

        return True

    async def run(self, label: str, job: Job) -> bool:
        """Run a job inline with timeout and retries. Never raises."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=wait_exponential(multiplier=0.05, max=0.5),
                reraise=True,
            ):
                with attempt:
                    await asyncio.wait_for(job(), timeout=self.config.write_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self._dead_letter(label, f"timed out after {self.config.write_timeout}s")
            return False
        except Exception as e:
            self._dead_letter(label, str(e) or type(e).__name__)
            return False

        self.completed += 1
        return True

    async def drain(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def close(self) -> None:
        """Drain the queue and stop the worker."""
        await self.drain()

        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def _ensure_worker(self) -> None:
        if self.running:
            return

        loop = asyncio.get_running_loop()
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.config.queue_size)
        self._worker = loop.create_task(self._run_loop())

    async def _run_loop(self) -> None:
        while True:
            label, job = await self._queue.get()
            try:
                await self.run(label, job)
            finally:
                self._queue.task_done()

    def _dead_letter(self, label: str, error: str) -> None:
        self.dead_letters.append(DeadLetter(label=label, error=error, timestamp=time.time()))
        logger.warning("Persistence job failed", job=label, error=error)
