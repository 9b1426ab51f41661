"""Periodic maintenance scheduler."""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()


class MaintenanceScheduler:
    """Runs a maintenance job on a fixed interval.

    Runs never overlap: if the previous run is still in progress when the
    next tick fires, that tick is skipped.

    Example:
        ```python
        scheduler = MaintenanceScheduler(long_term.refresh_retention, interval=300)
        await scheduler.start()
        ...
        await scheduler.stop()
        ```
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[object]],
        interval: float = 300.0,
        name: str = "maintenance",
    ):
        self.job = job
        self.interval = interval
        self.name = name

        self.runs = 0
        self.skipped = 0
        self.failures = 0

        self._task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        self._in_progress = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self):
        """Stop the scheduler and wait for an in-flight run."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._current and not self._current.done():
            try:
                await self._current
            except asyncio.CancelledError:
                pass

    async def run_once(self) -> bool:
        """Run the job now unless a run is already in progress.

        Returns False if the run was skipped. Job failures are logged.
        """
        if self._in_progress:
            self.skipped += 1
            logger.debug("Maintenance run skipped", job=self.name)
            return False

        self._in_progress = True
        try:
            await self.job()
            self.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.error("Maintenance run failed", job=self.name, error=str(e))
        finally:
            self._in_progress = False

        return True

    async def _run_loop(self):
        """Fire a run every ``interval`` seconds."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                if self._in_progress:
                    self.skipped += 1
                    logger.debug("Maintenance tick skipped", job=self.name)
                    continue
                self._current = asyncio.create_task(self.run_once())
            except asyncio.CancelledError:
                break
