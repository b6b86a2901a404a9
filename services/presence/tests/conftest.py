from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from services.presence.app.core.clock import Clock
from services.presence.app.core.config import Settings
from services.presence.app.core.player_ledger import PlayerLedger
from services.presence.app.core.session_store import SessionStore
from services.presence.app.core.statistics import StatisticsAggregator
from services.presence.app.db.repository import PresenceRepository

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path}/data/players.db"


@pytest.fixture
def settings(database_url):
    return Settings(
        _env_file=None,
        DATABASE_URL=database_url,
        CLEANUP_INTERVAL_SECONDS=3600,
        FLUSH_INTERVAL_SECONDS=3600,
        DB_CONNECT_ATTEMPTS=1,
        OBSERVER_QUEUE_SIZE=4,
    )


@pytest.fixture
def statistics():
    return StatisticsAggregator()


@pytest.fixture
def ledger(clock):
    return PlayerLedger(clock)


@pytest.fixture
def store(ledger, statistics, clock):
    """In-memory store with the default five minute TTL"""
    return SessionStore(ledger, statistics, clock, ttl_seconds=300)


@pytest_asyncio.fixture
async def repository(database_url):
    repo = PresenceRepository(database_url, connect_attempts=1)
    await repo.initialize()
    yield repo
    await repo.close()
