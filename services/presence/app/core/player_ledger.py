"""
Player ledger: lifetime records keyed by identity.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple
from uuid import uuid4

from .clock import Clock
from .models import Player

logger = logging.getLogger(__name__)

# Called inside the player's critical section with the record about to be
# stored and whether it is new. Raising aborts the change.
PlayerCommit = Callable[[Player, bool], Awaitable[None]]


class PlayerLedger:
    """Owns every Player record. Records are updated, never deleted."""

    def __init__(self, clock: Clock):
        self.clock = clock
        self._players: Dict[str, Player] = {}
        self._by_identity: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __len__(self) -> int:
        return len(self._players)

    def restore(self, players: Iterable[Player]) -> None:
        for player in players:
            self._store(player)
        logger.info(f"Restored {len(self._players)} players")

    def get(self, player_id: str) -> Optional[Player]:
        return self._players.get(player_id)

    def find_by_identity(self, identity_key: str) -> Optional[Player]:
        player_id = self._by_identity.get(identity_key)
        return self._players.get(player_id) if player_id else None

    async def find_or_create(
        self,
        identity_key: str,
        username: str,
        launcher_version: Optional[str] = None,
        commit: Optional[PlayerCommit] = None,
    ) -> Tuple[Player, bool]:
        """Resolve the player for an identity, creating it on first sight.

        Returns:
            The stored player and True when it was newly created.
        """
        async with self._locks[identity_key]:
            now = self.clock.now()
            existing = self.find_by_identity(identity_key)

            if existing is None:
                player = Player(
                    player_id=uuid4().hex,
                    identity_key=identity_key,
                    username=username,
                    launcher_version=launcher_version,
                    first_seen=now,
                    last_seen=now,
                )
                created = True
            else:
                player = existing.model_copy(update={
                    "username": username,
                    "launcher_version": (
                        launcher_version or existing.launcher_version
                    ),
                    "last_seen": now,
                })
                created = False

            if commit is not None:
                await commit(player, created)

            self._store(player)
            if created:
                logger.info(f"New player {player.player_id} for {username}")
            return player, created

    async def record_playtime(
        self,
        player_id: str,
        seconds: int,
        commit: Optional[PlayerCommit] = None,
    ) -> Player:
        """Add finished session time to a player's lifetime total."""
        if seconds < 0:
            raise ValueError("Playtime cannot be negative")

        existing = self._players.get(player_id)
        if existing is None:
            raise KeyError(player_id)

        async with self._locks[existing.identity_key]:
            # re-read inside the lock, a concurrent call may have replaced it
            current = self._players[player_id]
            player = current.model_copy(update={
                "total_playtime": current.total_playtime + seconds,
                "last_seen": self.clock.now(),
            })

            if commit is not None:
                await commit(player, False)

            self._store(player)
            return player

    def _store(self, player: Player) -> None:
        self._players[player.player_id] = player
        self._by_identity[player.identity_key] = player.player_id
