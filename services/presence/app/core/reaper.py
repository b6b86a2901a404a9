"""
Stale session reaper.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from .exceptions import NotFoundError
from .periodic import PeriodicTask
from .session_store import SessionStore

logger = logging.getLogger(__name__)

CleanupCallback = Callable[[List[str]], Awaitable[None]]


class StaleSessionReaper:
    """Finalizes sessions that stopped sending updates.

    Each session is finalized on its own; no lock is held across a sweep,
    so an update racing the sweep keeps its session alive if it lands
    first.
    """

    def __init__(
        self,
        store: SessionStore,
        on_cleanup: Optional[CleanupCallback] = None,
        interval: float = 60.0,
    ):
        self.store = store
        self.on_cleanup = on_cleanup
        self._task = PeriodicTask("stale-session-reaper", interval, self.sweep)

    @property
    def running(self) -> bool:
        return self._task.running

    async def sweep(self) -> List[str]:
        """Finalize every stale session; returns the finalized ids."""
        finalized: List[str] = []

        for session in self.store.get_stale():
            try:
                duration = await self.store.finalize_if_stale(session.session_id)
            except NotFoundError:
                # disconnected while the sweep was running
                continue
            except Exception as e:
                logger.error(
                    f"Failed to finalize stale session "
                    f"{session.session_id}: {e}"
                )
                continue

            if duration is not None:
                finalized.append(session.session_id)

        if finalized:
            logger.info(f"Cleaned up {len(finalized)} stale sessions")
            if self.on_cleanup is not None:
                await self.on_cleanup(finalized)

        return finalized

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        """Stop sweeping once the current sweep, if any, has finished."""
        await self._task.stop()
