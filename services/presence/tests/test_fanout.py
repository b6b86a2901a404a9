import asyncio
import json

import pytest

from services.presence.app.core.fanout import BroadcastFanout, Observer
from services.presence.app.core.models import EventKind, Session
from services.presence.app.core.projector import project

from .conftest import START


def views(*names):
    sessions = [
        Session(
            session_id=f"s{i}",
            player_ref=f"p{i}",
            display_name=name,
            connected_at=START,
            last_update=START,
        )
        for i, name in enumerate(names)
    ]
    return project(sessions, START)


def drain(observer: Observer):
    messages = []
    while observer.pending:
        message = observer._queue.get_nowait()
        if message is None:
            break
        messages.append(json.loads(message))
    return messages


def test_initial_goes_to_new_observer_only():
    fanout = BroadcastFanout()
    existing = fanout.register()
    newcomer = fanout.register()

    assert fanout.send_initial(newcomer, views("Notch"))

    assert drain(existing) == []
    [message] = drain(newcomer)
    assert message["type"] == "initial"
    assert message["count"] == 1


def test_publish_reaches_every_observer():
    fanout = BroadcastFanout()
    observers = [fanout.register() for _ in range(3)]

    delivered = fanout.publish(EventKind.PLAYER_CONNECTED, views("Notch", "jeb_"))

    assert delivered == 3
    for observer in observers:
        [message] = drain(observer)
        assert message["type"] == "player_connected"
        assert message["count"] == 2
        assert [p["username"] for p in message["players"]] == ["Notch", "jeb_"]


def test_full_observer_is_evicted_without_affecting_others():
    fanout = BroadcastFanout(queue_size=2)
    slow = fanout.register()
    fast = fanout.register()

    for _ in range(2):
        fanout.publish(EventKind.PLAYER_UPDATED, views("Notch"))
    drain(fast)

    delivered = fanout.publish(EventKind.PLAYER_UPDATED, views("Notch"))

    assert delivered == 1
    assert slow.closed
    assert fanout.get(slow.observer_id) is None
    assert len(fanout) == 1
    assert len(drain(fast)) == 1


def test_unregistered_observer_misses_later_events():
    fanout = BroadcastFanout()
    observer = fanout.register()
    fanout.unregister(observer)

    assert fanout.publish(EventKind.CLEANUP, views()) == 0
    assert observer.closed
    assert not observer.offer("late")


def test_publish_without_observers_is_a_no_op():
    assert BroadcastFanout().publish(EventKind.CLEANUP, views("Notch")) == 0


@pytest.mark.asyncio
async def test_messages_stop_when_observer_closes():
    fanout = BroadcastFanout()
    observer = fanout.register()
    fanout.publish(EventKind.PLAYER_CONNECTED, views("Notch"))

    received = []

    async def consume():
        async for message in observer.messages():
            received.append(json.loads(message))

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    fanout.close_all()
    await asyncio.wait_for(consumer, timeout=1)

    assert [m["type"] for m in received] == ["player_connected"]
    assert len(fanout) == 0


def test_close_abandons_pending_payloads():
    observer = Observer(queue_size=4)
    observer.offer("a")
    observer.offer("b")

    observer.close()

    assert observer.pending == 1
    assert observer._queue.get_nowait() is None
