"""
Fixed-interval background task with graceful stop.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs an async action every ``interval`` seconds.

    ``stop()`` interrupts the wait between runs but never a run in
    progress: the current action always completes first.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], Awaitable[Any]],
    ):
        self.name = name
        self.interval = interval
        self.action = action
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning(f"Periodic task {self.name} already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"Started {self.name} every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info(f"Stopped {self.name}")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval
                )
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.action()
            except Exception as e:
                logger.error(f"Periodic task {self.name} failed: {e}")
