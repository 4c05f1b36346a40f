"""
Background schedules: status sync, incoming sync and the job runner kick
"""

import asyncio
import logging
from typing import Awaitable, Callable, List

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a coroutine function every interval seconds until stopped"""

    def __init__(self, name: str, interval: float, action: Callable[[], Awaitable[object]], run_immediately: bool = False):
        self.name = name
        self.interval = interval
        self.action = action
        self.run_immediately = run_immediately
        self._task = None

    def start(self):
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def _loop(self):
        if not self.run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            logger.info(f"{self.name} triggered")
            try:
                await self.action()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class Scheduler:
    """Independent periodic tasks; they only share the record store"""

    def __init__(self, tasks: List[PeriodicTask]):
        self.tasks = tasks

    def start(self):
        for task in self.tasks:
            task.start()
            logger.info(f"Scheduled {task.name} every {task.interval}s")

    async def stop(self):
        for task in self.tasks:
            await task.stop()
        logger.info("Stopped background schedules")
