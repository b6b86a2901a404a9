"""
Durable storage of sessions, players and statistics.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, NamedTuple, Optional

from alembic.util import CommandError
from sqlalchemy import delete, insert, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from services.shared.db.exceptions import StorageError
from services.shared.db.session import build_engine
from services.shared.utils.retry import CircuitBreaker, with_retry

from ..core.models import Player, PrivacySettings, Session
from .migrations import run_migrations
from .models import PlayerRecord, SessionRecord, StatisticRecord

logger = logging.getLogger(__name__)


class PresenceState(NamedTuple):
    """Everything persisted, as loaded at startup."""
    sessions: List[Session]
    players: List[Player]
    statistics: Dict[str, int]


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _player_values(player: Player) -> Dict[str, Any]:
    return {
        "id": player.player_id,
        "identity_key": player.identity_key,
        "username": player.username,
        "launcher_version": player.launcher_version,
        "first_seen": player.first_seen,
        "last_seen": player.last_seen,
        "total_playtime": player.total_playtime,
    }


def _session_state(session: Session) -> Dict[str, Any]:
    """Columns a session update may change."""
    return {
        "status": session.status,
        "minecraft_version": session.minecraft_version,
        "world_name": session.world_name,
        "server_address": session.server_address,
        "game_mode": session.game_mode,
        "last_update": session.last_update,
    }


def _session_values(session: Session) -> Dict[str, Any]:
    values = _session_state(session)
    values.update({
        "session_id": session.session_id,
        "player_id": session.player_ref,
        "username": session.display_name,
        "connected_at": session.connected_at,
        "privacy_show_username": session.privacy.show_username,
        "privacy_show_version": session.privacy.show_version,
        "privacy_show_world": session.privacy.show_world,
        "privacy_show_server": session.privacy.show_server,
    })
    return values


class PresenceRepository:
    """SQLAlchemy-backed persistence for the presence core.

    Every public operation is one transaction bounded by ``timeout``.
    Database failures surface as StorageError and leave nothing
    half-written.
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        timeout: float = 10.0,
        connect_attempts: int = 5,
    ):
        self.database_url = database_url
        self.echo = echo
        self.timeout = timeout
        self.connect_attempts = connect_attempts
        self.engine: Optional[AsyncEngine] = None
        self.db_cb = CircuitBreaker(
            "database",
            failure_threshold=3,
            reset_timeout=30.0
        )

    async def initialize(self) -> None:
        """Connect, retrying with backoff, and bring the schema up to date."""
        if self.engine is None:
            self.engine = build_engine(self.database_url, echo=self.echo)

        await with_retry(
            self._migrate,
            max_attempts=self.connect_attempts,
            initial_delay=1.0,
            max_delay=30.0,
            circuit_breaker=self.db_cb,
            retry_on=(StorageError,),
        )
        logger.info("Presence repository initialized")

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        logger.info("Presence repository closed")

    async def check_connection_health(self) -> bool:
        try:
            await self._transaction(
                "health check", lambda conn: conn.execute(text("SELECT 1"))
            )
            return True
        except StorageError:
            return False

    async def load_state(self) -> PresenceState:
        async def load(conn: AsyncConnection) -> PresenceState:
            players = [
                Player(
                    player_id=row.id,
                    identity_key=row.identity_key,
                    username=row.username,
                    launcher_version=row.launcher_version,
                    total_playtime=row.total_playtime,
                    first_seen=_utc(row.first_seen),
                    last_seen=_utc(row.last_seen),
                )
                for row in await conn.execute(select(PlayerRecord.__table__))
            ]
            sessions = [
                Session(
                    session_id=row.session_id,
                    player_ref=row.player_id,
                    display_name=row.username,
                    status=row.status,
                    minecraft_version=row.minecraft_version,
                    world_name=row.world_name,
                    server_address=row.server_address,
                    game_mode=row.game_mode,
                    privacy=PrivacySettings(
                        show_username=row.privacy_show_username,
                        show_version=row.privacy_show_version,
                        show_world=row.privacy_show_world,
                        show_server=row.privacy_show_server,
                    ),
                    connected_at=_utc(row.connected_at),
                    last_update=_utc(row.last_update),
                )
                for row in await conn.execute(select(SessionRecord.__table__))
            ]
            statistics = {
                row.metric: row.value
                for row in await conn.execute(select(StatisticRecord.__table__))
            }
            return PresenceState(sessions, players, statistics)

        state = await self._transaction("load state", load)
        logger.info(
            f"Loaded {len(state.sessions)} sessions and "
            f"{len(state.players)} players"
        )
        return state

    async def commit_create(
        self,
        session: Session,
        player: Player,
        player_created: bool,
        deltas: Mapping[str, int],
    ) -> None:
        """Insert a session with its player change and counter deltas."""
        async def create(conn: AsyncConnection) -> None:
            if player_created:
                await conn.execute(
                    insert(PlayerRecord).values(**_player_values(player))
                )
            else:
                await conn.execute(
                    update(PlayerRecord)
                    .where(PlayerRecord.id == player.player_id)
                    .values(
                        username=player.username,
                        launcher_version=player.launcher_version,
                        last_seen=player.last_seen,
                    )
                )
            await conn.execute(
                insert(SessionRecord).values(**_session_values(session))
            )
            await self._apply_deltas(conn, deltas)

        await self._transaction("create session", create)

    async def commit_finalize(
        self,
        session_id: str,
        player: Optional[Player],
        deltas: Mapping[str, int],
    ) -> None:
        """Delete a session, crediting playtime to its player and counters."""
        async def finalize(conn: AsyncConnection) -> None:
            if player is not None:
                await conn.execute(
                    update(PlayerRecord)
                    .where(PlayerRecord.id == player.player_id)
                    .values(
                        total_playtime=player.total_playtime,
                        last_seen=player.last_seen,
                    )
                )
            await conn.execute(
                delete(SessionRecord)
                .where(SessionRecord.session_id == session_id)
            )
            await self._apply_deltas(conn, deltas)

        await self._transaction("finalize session", finalize)

    async def flush_sessions(self, sessions: List[Session]) -> None:
        """Write the mutable fields of updated sessions."""
        if not sessions:
            return

        async def flush(conn: AsyncConnection) -> None:
            for session in sessions:
                await conn.execute(
                    update(SessionRecord)
                    .where(SessionRecord.session_id == session.session_id)
                    .values(**_session_state(session))
                )

        await self._transaction("flush sessions", flush)

    async def _migrate(self) -> None:
        """Bring the schema to the Alembic head revision."""
        try:
            revision = await self._transaction(
                "schema migration", lambda conn: conn.run_sync(run_migrations)
            )
        except CommandError as e:
            logger.error(f"Database schema migration failed: {e}")
            raise StorageError(f"schema migration failed: {e}") from e
        logger.info(f"Database schema at revision {revision}")

    async def _apply_deltas(
        self, conn: AsyncConnection, deltas: Mapping[str, int]
    ) -> None:
        now = datetime.now(timezone.utc)
        for metric, delta in deltas.items():
            if not delta:
                continue
            result = await conn.execute(
                update(StatisticRecord)
                .where(StatisticRecord.metric == metric)
                .values(value=StatisticRecord.value + delta, updated_at=now)
            )
            if result.rowcount == 0:
                await conn.execute(
                    insert(StatisticRecord).values(
                        metric=metric, value=delta, updated_at=now
                    )
                )

    async def _transaction(
        self,
        description: str,
        operation: Callable[[AsyncConnection], Awaitable[Any]],
    ) -> Any:
        if self.engine is None:
            raise StorageError(f"Cannot {description}: repository not initialized")

        async def run() -> Any:
            async with self.engine.begin() as conn:
                return await operation(conn)

        try:
            return await asyncio.wait_for(run(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Database {description} timed out")
            raise StorageError(f"{description} timed out") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database {description} failed: {e}")
            raise StorageError(f"{description} failed: {e}") from e
