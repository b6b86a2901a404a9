"""
Presence manager: wires the session store, projection and broadcast.
"""
import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..db.repository import PresenceRepository
from .clock import Clock
from .config import Settings
from .fanout import BroadcastFanout, Observer
from .models import EventKind, PresenceView, PrivacySettings, SessionPatch
from .periodic import PeriodicTask
from .player_ledger import PlayerLedger
from .projector import project
from .reaper import StaleSessionReaper
from .session_store import SessionStore
from .statistics import StatisticsAggregator

# configure logging
logger = logging.getLogger(__name__)


class PresenceManager:
    """Manages launcher sessions and streams presence to observers.

    Every mutation follows the same path: store change, projection of the
    live sessions, one broadcast. The reaper enters that path through
    ``_on_cleanup``.
    """

    def __init__(
        self,
        settings: Settings,
        repository: Optional[PresenceRepository] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the presence manager.

        Args:
            settings: Service settings
            repository: Durable storage; None keeps everything in memory
            clock: Time source, replaceable in tests
        """
        self.settings = settings
        self.repository = repository
        self.clock = clock or Clock()
        self._initialized = False
        self._started_at = time.monotonic()

        self.statistics_aggregator = StatisticsAggregator()
        self.ledger = PlayerLedger(self.clock)
        self.store = SessionStore(
            self.ledger,
            self.statistics_aggregator,
            self.clock,
            ttl_seconds=settings.SESSION_TTL_SECONDS,
            repository=repository,
        )
        self.fanout = BroadcastFanout(settings.OBSERVER_QUEUE_SIZE)
        self.reaper = StaleSessionReaper(
            self.store,
            on_cleanup=self._on_cleanup,
            interval=settings.CLEANUP_INTERVAL_SECONDS,
        )
        self._flusher = PeriodicTask(
            "session-flush",
            settings.FLUSH_INTERVAL_SECONDS,
            self.store.flush,
        )

    async def initialize(self, start_background: bool = True) -> None:
        """Load persisted state and start the reaper and flush loops."""
        if self._initialized:
            logger.warning("Presence manager already initialized")
            return

        try:
            if self.repository is not None:
                await self.repository.initialize()
                state = await self.repository.load_state()
                self.statistics_aggregator.restore(state.statistics)
                self.ledger.restore(state.players)
                self.store.restore(state.sessions)

            # sessions reloaded from the database are held to their TTL
            await self.reaper.sweep()

            if start_background:
                self.reaper.start()
                if self.repository is not None:
                    self._flusher.start()

            self._initialized = True
            logger.info("Presence manager initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize presence manager: {e}")
            self._initialized = False
            raise

    async def shutdown(self) -> None:
        """Stop background work, flush pending updates, drop observers."""
        await self.reaper.stop()
        await self._flusher.stop()

        if self.repository is not None:
            try:
                await self.store.flush()
            except Exception as e:
                logger.error(f"Final session flush failed: {e}")

        self.fanout.close_all()

        if self.repository is not None:
            await self.repository.close()

        self._initialized = False
        logger.info("Presence manager shut down")

    async def connect(
        self,
        username: str,
        identity_hint: Optional[str] = None,
        privacy: Optional[PrivacySettings] = None,
        launcher_version: Optional[str] = None,
    ) -> str:
        """Start a session and announce it; returns the session id."""
        session = await self.store.create(
            username, identity_hint, privacy, launcher_version
        )
        self._broadcast(EventKind.PLAYER_CONNECTED)
        return session.session_id

    async def update_status(self, session_id: str, patch: SessionPatch) -> None:
        await self.store.update(session_id, patch)
        self._broadcast(EventKind.PLAYER_UPDATED)

    async def heartbeat(self, session_id: str) -> None:
        """Keep a session alive without announcing anything."""
        await self.store.update(session_id, SessionPatch())

    async def disconnect(self, session_id: str) -> int:
        """End a session; returns its duration in seconds."""
        duration = await self.store.finalize(session_id)
        self._broadcast(EventKind.PLAYER_DISCONNECTED)
        return duration

    def list_live(self) -> List[PresenceView]:
        return project(self.store.get_all_live(), self.clock.now())

    def statistics(self) -> Dict[str, int]:
        stats = self.statistics_aggregator.snapshot()
        stats["online_players"] = len(self.store.get_all_live())
        return stats

    def popular_versions(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ranked = self.store.popular_versions(
            limit if limit is not None else self.settings.POPULAR_VERSIONS_LIMIT,
            timedelta(hours=self.settings.POPULAR_VERSIONS_WINDOW_HOURS),
        )
        return [{"version": version, "count": count} for version, count in ranked]

    def register_observer(self) -> Observer:
        """Register a real-time observer and send it the current state."""
        observer = self.fanout.register()
        self.fanout.send_initial(observer, self.list_live())
        return observer

    def unregister_observer(self, observer: Observer) -> None:
        self.fanout.unregister(observer)

    @property
    def observer_count(self) -> int:
        return len(self.fanout)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started_at

    async def check_connection_health(self) -> bool:
        """Check if the database connection is online."""
        if self.repository is None:
            return True
        return await self.repository.check_connection_health()

    async def _on_cleanup(self, session_ids: List[str]) -> None:
        self._broadcast(EventKind.CLEANUP)

    def _broadcast(self, kind: EventKind) -> None:
        self.fanout.publish(kind, self.list_live())
