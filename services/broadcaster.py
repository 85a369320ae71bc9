"""Real-time fan-out of readings to connected dashboards."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from threading import Lock
from typing import Awaitable, Callable, Dict, List, Optional, cast
from uuid import uuid4

from models.records import Reading
from services.errors import SubscriberSendFailed

logger = logging.getLogger(__name__)

SendCallable = Callable[[Reading], Awaitable[None]]

_CLOSE = object()


class SubscriberState(str, Enum):
    """Connection lifecycle of a real-time subscriber."""

    connecting = "connecting"
    open = "open"
    closed = "closed"


class Subscriber:
    """One live connection with its own ordered outbox.

    ``deliver`` never blocks: readings are queued and forwarded by ``pump``
    running on the connection's own task, so a slow client only backs up
    its own outbox.
    """

    def __init__(self, subscriber_id: Optional[str] = None, max_pending: int = 100) -> None:
        self.id = subscriber_id or uuid4().hex
        self.state = SubscriberState.connecting
        self.max_pending = max_pending
        self._outbox: asyncio.Queue[object] = asyncio.Queue()

    def open(self) -> None:
        if self.state is SubscriberState.connecting:
            self.state = SubscriberState.open

    def close(self) -> None:
        if self.state is SubscriberState.closed:
            return
        self.state = SubscriberState.closed
        self._outbox.put_nowait(_CLOSE)

    def deliver(self, reading: Reading) -> None:
        if self.state is not SubscriberState.open:
            raise SubscriberSendFailed(f"Subscriber {self.id} is {self.state.value}.")
        if self._outbox.qsize() >= self.max_pending:
            raise SubscriberSendFailed(
                f"Subscriber {self.id} fell behind by {self.max_pending} readings."
            )
        self._outbox.put_nowait(reading)

    async def greet(self, send: SendCallable, reading: Reading, timeout: float) -> None:
        """Send the current snapshot ahead of anything queued by broadcasts."""
        await self._send(send, reading, timeout)

    async def pump(self, send: SendCallable, timeout: float) -> None:
        """Forward queued readings in order until the subscriber is closed."""
        while True:
            item = await self._outbox.get()
            if item is _CLOSE or self.state is SubscriberState.closed:
                return
            await self._send(send, cast(Reading, item), timeout)

    async def _send(self, send: SendCallable, reading: Reading, timeout: float) -> None:
        try:
            await asyncio.wait_for(send(reading), timeout)
        except asyncio.TimeoutError as exc:
            raise SubscriberSendFailed(f"Send timed out after {timeout}s.") from exc
        except Exception as exc:  # noqa: BLE001 - transport errors vary by server
            raise SubscriberSendFailed(f"Send failed: {exc!r}") from exc


class SubscriberRegistry:
    """Owned set of live subscribers keyed by id."""

    def __init__(self, max_pending: int = 100) -> None:
        self.max_pending = max_pending
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def add(self, subscriber: Optional[Subscriber] = None) -> Subscriber:
        if subscriber is None:
            subscriber = Subscriber(max_pending=self.max_pending)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
        return subscriber

    def remove(self, subscriber: Subscriber) -> bool:
        """Close and forget ``subscriber``; removing twice is a no-op."""
        with self._lock:
            removed = self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        return removed is not None

    def close_all(self) -> None:
        with self._lock:
            members = list(self._subscribers.values())
            self._subscribers.clear()
        for member in members:
            member.close()

    def snapshot(self) -> List[Subscriber]:
        with self._lock:
            members = list(self._subscribers.values())
        return [member for member in members if member.state is SubscriberState.open]


class Broadcaster:

    def __init__(self, registry: SubscriberRegistry) -> None:
        self.registry = registry

    def broadcast(self, reading: Reading) -> int:
        """Queue ``reading`` for every open subscriber and return how many accepted it."""
        delivered = 0
        for subscriber in self.registry.snapshot():
            try:
                subscriber.deliver(reading)
            except SubscriberSendFailed as exc:
                self.registry.remove(subscriber)
                logger.warning(
                    "Dropped subscriber during broadcast",
                    extra={
                        "subscriber_id": subscriber.id,
                        "reason": str(exc),
                        "subscriber_count": len(self.registry),
                    },
                )
                continue
            delivered += 1
        return delivered
