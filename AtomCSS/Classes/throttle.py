import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class Throttle:
    """One cancellable delayed task per key.

    Scheduling under a key that already has a pending task keeps the pending
    one unless the new task has a strictly higher priority, in which case the
    pending task is cancelled and replaced.
    """

    def __init__(self, sleep=asyncio.sleep):
        self._sleep = sleep
        self._tasks: Dict[str, Tuple[asyncio.Task, int]] = {}

    @property
    def pending(self) -> bool:
        return bool(self._tasks)

    def is_pending(self, key) -> bool:
        return key in self._tasks

    def schedule(self, key, fn: Callable[[], Awaitable], delay: float, priority: int = 0) -> bool:
        current = self._tasks.get(key)
        if current is not None:
            task, current_priority = current
            if priority <= current_priority:
                logger.debug("Ignoring task %s (priority %d <= %d)", key, priority, current_priority)
                return False
            task.cancel()
        task = asyncio.create_task(self._run(key, fn, delay))
        self._tasks[key] = (task, priority)
        return True

    async def _run(self, key, fn, delay):
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            return
        current = self._tasks.get(key)
        if current is not None and current[0] is asyncio.current_task():
            del self._tasks[key]
        await fn()

    def cancel(self, key) -> bool:
        current = self._tasks.pop(key, None)
        if current is None:
            return False
        current[0].cancel()
        return True

    def cancel_all(self):
        for key in list(self._tasks):
            self.cancel(key)

    async def drain(self):
        while self._tasks:
            tasks = [task for task, _ in self._tasks.values()]
            await asyncio.gather(*tasks, return_exceptions=True)
            for key, (task, _) in list(self._tasks.items()):
                if task.done():
                    del self._tasks[key]


class Debouncer:
    """Single shared timer: each trigger restarts the window, the callback runs
    once the window passes quietly. The callback receives the earliest event
    time of the batch.
    """

    def __init__(self, callback: Callable[[float], Awaitable], delay: float,
                 sleep=asyncio.sleep, clock=time.monotonic):
        self.callback = callback
        self.delay = delay
        self._sleep = sleep
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._earliest: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, path=None, event_time=None):
        event_time = self._clock() if event_time is None else event_time
        if self._earliest is None or event_time < self._earliest:
            self._earliest = event_time
        if self._task is not None:
            self._task.cancel()
        logger.debug("Write scheduled by %s", path)
        self._task = asyncio.create_task(self._wait())

    async def _wait(self):
        try:
            await self._sleep(self.delay)
        except asyncio.CancelledError:
            return
        self._task = None
        await self._fire()

    async def _fire(self):
        started = self._earliest if self._earliest is not None else self._clock()
        self._earliest = None
        await self.callback(started)

    async def flush(self):
        """Cancels any pending window and runs the callback right away."""
        self.cancel(reset=False)
        await self._fire()

    def cancel(self, reset=True):
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if reset:
            self._earliest = None

    async def wait(self):
        while self._task is not None:
            task = self._task
            await asyncio.gather(task, return_exceptions=True)
            if self._task is task:
                self._task = None
