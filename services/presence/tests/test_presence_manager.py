import json

import pytest
import pytest_asyncio

from services.presence.app.core.models import PrivacySettings, SessionPatch
from services.presence.app.core.presence_manager import PresenceManager
from services.presence.app.db.repository import PresenceRepository


def drain(observer):
    messages = []
    while observer.pending:
        message = observer._queue.get_nowait()
        if message is None:
            break
        messages.append(json.loads(message))
    return messages


@pytest_asyncio.fixture
async def manager(settings, clock):
    manager = PresenceManager(settings, clock=clock)
    await manager.initialize(start_background=False)
    yield manager
    await manager.shutdown()


@pytest.mark.asyncio
async def test_connect_update_disconnect_scenario(manager, clock):
    session_id = await manager.connect(
        "Notch", "uuid-1", PrivacySettings(show_server=False)
    )
    await manager.update_status(
        session_id, SessionPatch(status="playing", world_name="Valley")
    )

    [view] = manager.list_live()
    assert view.username == "Notch"
    assert view.status == "playing"
    assert view.world_name == "Valley"
    assert view.server_address is None
    assert view.session_duration == 0

    clock.advance(42)
    assert await manager.disconnect(session_id) == 42
    assert manager.list_live() == []


@pytest.mark.asyncio
async def test_observer_gets_initial_then_every_mutation(manager):
    await manager.connect("Notch", "uuid-1")
    observer = manager.register_observer()

    session_id = await manager.connect("jeb_", "uuid-2")
    await manager.update_status(session_id, SessionPatch(status="idle"))
    await manager.heartbeat(session_id)
    await manager.disconnect(session_id)

    messages = drain(observer)
    assert [m["type"] for m in messages] == [
        "initial",
        "player_connected",
        "player_updated",
        "player_disconnected",
    ]
    assert [m["count"] for m in messages] == [1, 2, 2, 1]


@pytest.mark.asyncio
async def test_cleanup_is_one_broadcast(manager, clock):
    for i in range(3):
        await manager.connect(f"player{i}", f"uuid-{i}")
    observer = manager.register_observer()
    clock.advance(6 * 60)

    await manager.reaper.sweep()

    messages = drain(observer)
    assert [m["type"] for m in messages] == ["initial", "cleanup"]
    assert messages[1]["count"] == 0
    assert manager.statistics()["total_playtime"] == 3 * 360


@pytest.mark.asyncio
async def test_statistics_and_popular_versions(manager):
    for i, version in enumerate(["1.20.4", "1.20.4", "1.8.9"]):
        session_id = await manager.connect(f"player{i}", f"uuid-{i}")
        await manager.update_status(
            session_id, SessionPatch(minecraft_version=version)
        )

    stats = manager.statistics()
    assert stats["total_launches"] == 3
    assert stats["total_users"] == 3
    assert stats["online_players"] == 3
    assert manager.popular_versions(1) == [{"version": "1.20.4", "count": 2}]
    assert manager.popular_versions(0) == []
    assert len(manager.popular_versions()) == 2


@pytest.mark.asyncio
async def test_state_survives_restart(settings, clock):
    first = PresenceManager(
        settings, PresenceRepository(settings.DATABASE_URL), clock
    )
    await first.initialize(start_background=False)
    session_id = await first.connect("Notch", "uuid-1")
    await first.update_status(session_id, SessionPatch(world_name="Valley"))
    await first.shutdown()

    second = PresenceManager(
        settings, PresenceRepository(settings.DATABASE_URL), clock
    )
    await second.initialize(start_background=False)
    try:
        [view] = second.list_live()
        assert view.session_id == session_id
        assert view.world_name == "Valley"
        assert second.statistics()["total_launches"] == 1
    finally:
        await second.shutdown()


@pytest.mark.asyncio
async def test_expired_sessions_are_finalized_on_reload(settings, clock):
    first = PresenceManager(
        settings, PresenceRepository(settings.DATABASE_URL), clock
    )
    await first.initialize(start_background=False)
    session_id = await first.connect("Notch", "uuid-1")
    await first.shutdown()

    clock.advance(10 * 60)
    second = PresenceManager(
        settings, PresenceRepository(settings.DATABASE_URL), clock
    )
    await second.initialize(start_background=False)
    try:
        assert second.list_live() == []
        assert session_id not in second.store
        assert second.statistics()["total_playtime"] == 600
    finally:
        await second.shutdown()


@pytest.mark.asyncio
async def test_shutdown_closes_observers(settings, clock):
    manager = PresenceManager(settings, clock=clock)
    await manager.initialize()
    observer = manager.register_observer()

    await manager.shutdown()

    assert observer.closed
    assert manager.observer_count == 0
    assert not manager.reaper.running
