import asyncio
from typing import Awaitable, Callable, Optional

from ..utils.logger import app_logger


class StatsDebouncer:
    """Collapse bursts of triggers into one callback.

    Each ``trigger()`` restarts the timer; the callback runs once ``delay``
    seconds have passed without another trigger.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], delay: float):
        self.logger = app_logger.bind(component="stats_debouncer")
        self.callback = callback
        self.delay = delay
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self):
        self.cancel()
        self._task = asyncio.create_task(self._fire())

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _fire(self):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            # Timer reset
            return
        try:
            await self.callback()
        except Exception as e:
            self.logger.error(f"Debounced callback failed: {e}")
