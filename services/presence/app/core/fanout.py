"""
Broadcast fanout of presence notifications to real-time observers.
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, Iterable, Optional
from uuid import uuid4

from .models import EventKind, Notification, PresenceView

logger = logging.getLogger(__name__)

_CLOSED = None


class Observer:
    """Send handle of one real-time connection.

    The transport drains ``messages()``; the fanout only ever offers
    payloads without waiting.
    """

    def __init__(self, queue_size: int = 32):
        self.observer_id = uuid4().hex
        # one extra slot so the close marker always fits
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size + 1)
        self._capacity = queue_size
        self.closed = False

    def offer(self, message: str) -> bool:
        """Queue a payload; False if the observer is closed or full."""
        if self.closed or self._queue.qsize() >= self._capacity:
            return False
        self._queue.put_nowait(message)
        return True

    def close(self) -> None:
        """Stop the observer, abandoning payloads not yet sent."""
        if self.closed:
            return
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def messages(self) -> AsyncIterator[str]:
        while True:
            message = await self._queue.get()
            if message is _CLOSED:
                return
            yield message


class BroadcastFanout:
    """Registry of live observers and best-effort delivery to them."""

    def __init__(self, queue_size: int = 32):
        self.queue_size = queue_size
        self._observers: Dict[str, Observer] = {}

    def __len__(self) -> int:
        return len(self._observers)

    def register(self) -> Observer:
        observer = Observer(self.queue_size)
        self._observers[observer.observer_id] = observer
        logger.info(
            f"Observer {observer.observer_id} registered "
            f"({len(self._observers)} connected)"
        )
        return observer

    def unregister(self, observer: Observer) -> None:
        if self._observers.pop(observer.observer_id, None) is not None:
            logger.info(
                f"Observer {observer.observer_id} unregistered "
                f"({len(self._observers)} connected)"
            )
        observer.close()

    def send_initial(
        self, observer: Observer, views: Iterable[PresenceView]
    ) -> bool:
        """Send the current state to a single, newly registered observer."""
        message = Notification.build(EventKind.INITIAL, views).to_message()
        if not observer.offer(message):
            self.unregister(observer)
            return False
        return True

    def publish(
        self, kind: EventKind, views: Iterable[PresenceView]
    ) -> int:
        """Deliver one notification to every registered observer.

        Observers whose buffer is full are evicted. Returns the number of
        observers the notification was queued for.
        """
        message = Notification.build(kind, views).to_message()
        delivered = 0

        for observer in list(self._observers.values()):
            if observer.offer(message):
                delivered += 1
            else:
                logger.warning(
                    f"Evicting observer {observer.observer_id}: "
                    f"buffer full ({observer.pending} pending)"
                )
                self.unregister(observer)

        logger.debug(f"Published {kind.value} to {delivered} observers")
        return delivered

    def close_all(self) -> None:
        for observer in list(self._observers.values()):
            self.unregister(observer)

    def get(self, observer_id: str) -> Optional[Observer]:
        return self._observers.get(observer_id)
