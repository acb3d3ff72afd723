"""Runs sync passes on fixed intervals."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from tubebridge.sync.history import SyncHistory
from tubebridge.sync.models import SyncResult

logger = logging.getLogger(__name__)

TaskFactory = Callable[[asyncio.Event], Awaitable[SyncResult]]


@dataclass
class ScheduledTask:
    name: str
    factory: TaskFactory
    interval: int
    run_on_startup: bool = True
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_result: Optional[SyncResult] = None


class TaskScheduler:
    """Runs each registered task every ``interval`` seconds, never two runs of one task at once."""

    def __init__(self, history: Optional[SyncHistory] = None):
        self.history = history
        self.tasks: Dict[str, ScheduledTask] = {}
        self.cancel = asyncio.Event()
        self._loops: List[asyncio.Task] = []

    def add_task(self, name: str, factory: TaskFactory, interval: int,
                 run_on_startup: bool = True) -> None:
        self.tasks[name] = ScheduledTask(name, factory, interval, run_on_startup)

    async def run_once(self, name: str) -> Optional[SyncResult]:
        """Run a task now unless a run of it is already in progress."""
        task = self.tasks[name]
        if task.lock.locked():
            logger.info(f"Task {name} is already running, skipping")
            return None

        async with task.lock:
            logger.info(f"Running task {name}")
            try:
                result = await task.factory(self.cancel)
            except Exception as e:
                logger.error(f"Task {name} failed: {e}", exc_info=True)
                return None

            task.last_result = result
            logger.info(result.summary())
            if self.history:
                try:
                    await self.history.record_result(result)
                except Exception as e:
                    logger.error(f"Failed to record history for {name}: {e}")
            return result

    async def _wait(self, seconds: int) -> bool:
        """Sleep for ``seconds``; returns False once the scheduler is stopping."""
        try:
            await asyncio.wait_for(self.cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def _loop(self, task: ScheduledTask) -> None:
        if not task.run_on_startup and not await self._wait(task.interval):
            return
        while not self.cancel.is_set():
            await self.run_once(task.name)
            if not await self._wait(task.interval):
                return

    def start(self) -> None:
        for task in self.tasks.values():
            if task.interval <= 0:
                logger.info(f"Task {task.name} has no interval, not scheduling")
                continue
            logger.info(f"Scheduling {task.name} every {task.interval}s")
            self._loops.append(asyncio.create_task(self._loop(task)))

    async def stop(self) -> None:
        """Signal running passes to stop and wait for the loops to exit."""
        self.cancel.set()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []
