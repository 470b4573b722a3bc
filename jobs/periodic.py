"""
Fixed-interval background jobs running on the app's event loop
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    """
    Runs func every interval_seconds until stopped.
    Exceptions are logged and the loop keeps going.
    """

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], Awaitable[Any]]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.runs = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        self.runs += 1
        try:
            await self.func()
        except Exception as e:
            self.failures += 1
            logger.error(f"Periodic job '{self.name}' failed: {e}", exc_info=True)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info(f"Periodic job '{self.name}' started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Periodic job '{self.name}' stopped")
