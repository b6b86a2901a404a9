"""
Session store: the authoritative table of live launcher sessions.
"""
import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from .clock import Clock
from .exceptions import NotFoundError, StorageError, ValidationError
from .models import Player, PrivacySettings, Session, SessionPatch
from .player_ledger import PlayerLedger
from .statistics import (
    TOTAL_LAUNCHES,
    TOTAL_PLAYTIME,
    TOTAL_USERS,
    StatisticsAggregator,
)

if TYPE_CHECKING:
    from ..db.repository import PresenceRepository

logger = logging.getLogger(__name__)


class SessionStore:
    """Owns Session records from creation until they are finalized.

    Every mutation of a session runs under that session's lock. Creation
    and finalization are committed to the repository in one transaction
    before memory changes; plain updates are kept in memory and flushed
    periodically.
    """

    def __init__(
        self,
        ledger: PlayerLedger,
        statistics: StatisticsAggregator,
        clock: Clock,
        ttl_seconds: int = 300,
        repository: Optional["PresenceRepository"] = None,
    ):
        self.ledger = ledger
        self.statistics = statistics
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self.repository = repository
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._dirty: Set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def restore(self, sessions: Iterable[Session]) -> None:
        """Reload persisted sessions; the reaper re-validates their TTL."""
        for session in sessions:
            self._sessions[session.session_id] = session
            self._locks[session.session_id] = asyncio.Lock()
        logger.info(f"Restored {len(self._sessions)} sessions")

    async def create(
        self,
        display_name: str,
        identity_hint: Optional[str] = None,
        privacy: Optional[PrivacySettings] = None,
        launcher_version: Optional[str] = None,
    ) -> Session:
        """Start a new session and return it.

        Raises:
            ValidationError: if display_name is empty
            StorageError: if the session could not be persisted; nothing
                is counted in that case
        """
        name = (display_name or "").strip()
        if not name:
            raise ValidationError("Username required")

        session_id = str(uuid4())
        identity_key = identity_hint or session_id
        now = self.clock.now()
        created_session: List[Session] = []

        async def persist(player: Player, player_created: bool) -> None:
            session = Session(
                session_id=session_id,
                player_ref=player.player_id,
                display_name=name,
                privacy=privacy or PrivacySettings(),
                connected_at=now,
                last_update=now,
            )
            if self.repository is not None:
                await self.repository.commit_create(
                    session,
                    player,
                    player_created,
                    self._launch_deltas(player_created),
                )
            created_session.append(session)

        _, player_created = await self.ledger.find_or_create(
            identity_key, name, launcher_version, commit=persist
        )
        session = created_session[0]

        self._locks[session_id] = asyncio.Lock()
        self._sessions[session_id] = session
        await self.statistics.apply(self._launch_deltas(player_created))

        logger.info(f"Session {session_id} created for {name}")
        return session

    async def update(self, session_id: str, patch: SessionPatch) -> Session:
        """Apply a sparse patch and refresh last_update.

        Raises:
            NotFoundError: if the session is not live
        """
        changes = patch.changes()
        async with self._lock_for(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                raise NotFoundError(session_id)

            now = max(self.clock.now(), current.connected_at)
            changes["last_update"] = now
            session = current.model_copy(update=changes)
            self._sessions[session_id] = session
            self._dirty.add(session_id)

        logger.debug(f"Session {session_id} updated: {sorted(changes)}")
        return session

    async def finalize(self, session_id: str) -> int:
        """End a session, crediting its duration, and return the duration.

        Raises:
            NotFoundError: if the session is not live
            StorageError: if the change could not be persisted
        """
        async with self._lock_for(session_id):
            return await self._finalize_locked(session_id)

    async def finalize_if_stale(self, session_id: str) -> Optional[int]:
        """Finalize a session only if it is still stale under its lock.

        Returns None when an update refreshed the session first.
        """
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(session_id)
            if not self._is_stale(session, self.clock.now()):
                return None
            return await self._finalize_locked(session_id)

    async def _finalize_locked(self, session_id: str) -> int:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(session_id)

        duration = session.duration(self.clock.now())
        deltas = {TOTAL_PLAYTIME: duration}

        async def persist(player: Optional[Player], _created: bool = False):
            if self.repository is not None:
                await self.repository.commit_finalize(
                    session_id, player, deltas
                )

        if self.ledger.get(session.player_ref) is not None:
            await self.ledger.record_playtime(
                session.player_ref, duration, commit=persist
            )
        else:
            logger.warning(
                f"Session {session_id} references unknown player "
                f"{session.player_ref}"
            )
            await persist(None)

        del self._sessions[session_id]
        self._dirty.discard(session_id)
        self._locks.pop(session_id, None)
        await self.statistics.apply(deltas)

        logger.info(f"Session {session_id} finalized after {duration}s")
        return duration

    def get_all_live(self) -> List[Session]:
        now = self.clock.now()
        return [s for s in self._sessions.values() if not self._is_stale(s, now)]

    def get_stale(self) -> List[Session]:
        now = self.clock.now()
        return [s for s in self._sessions.values() if self._is_stale(s, now)]

    def popular_versions(
        self, limit: int = 10, window: timedelta = timedelta(hours=24)
    ) -> List[Tuple[str, int]]:
        """Most used game versions among sessions updated within window."""
        cutoff: datetime = self.clock.now() - window
        counts = Counter(
            s.minecraft_version
            for s in list(self._sessions.values())
            if s.minecraft_version and s.last_update > cutoff
        )
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]

    async def flush(self) -> int:
        """Persist sessions changed since the last flush."""
        if self.repository is None or not self._dirty:
            return 0

        dirty = self._dirty
        self._dirty = set()
        sessions = [self._sessions[sid] for sid in dirty if sid in self._sessions]
        try:
            await self.repository.flush_sessions(sessions)
        except StorageError:
            # keep them for the next flush
            self._dirty |= {s.session_id for s in sessions}
            raise

        logger.debug(f"Flushed {len(sessions)} sessions")
        return len(sessions)

    def _is_stale(self, session: Session, now: datetime) -> bool:
        return now - session.last_update > self.ttl

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            raise NotFoundError(session_id)
        return lock

    @staticmethod
    def _launch_deltas(player_created: bool) -> Dict[str, int]:
        return {TOTAL_LAUNCHES: 1, TOTAL_USERS: 1 if player_created else 0}
