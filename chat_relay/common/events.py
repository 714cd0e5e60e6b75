"""
Event streams shared by the server and client.

Front ends (a server window, a CLI, a log sink) observe the relay through
two streams owned by the server: every relayed line, and every change of the
presence list. Each subscriber gets its own bounded queue; a subscriber that
falls behind loses its oldest items rather than slowing the relay down.
"""

import asyncio
from typing import Any, List, Optional

from chat_relay.common.constants import EVENT_STREAM_BUFFER


_CLOSED = object()


class Subscription:
    """Async iterator over the items published on an EventStream."""

    def __init__(self, stream: 'EventStream', buffer_size: int):
        self._stream = stream
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        self.dropped = 0

    def _offer(self, item: Any):
        if self._queue.full():
            # Keep the newest items for slow consumers
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    async def get(self) -> Any:
        """Wait for the next item. Raises StopAsyncIteration once the stream is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Let other waiters see the end of the stream too
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> Any:
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self):
        """Stop receiving items."""
        self._stream.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        return await self.get()


class EventStream:
    """Fan-out stream of events to any number of subscribers."""

    def __init__(self, name: str, buffer_size: int = EVENT_STREAM_BUFFER, replay_latest: bool = False):
        self.name = name
        self.buffer_size = buffer_size
        self.replay_latest = replay_latest
        self.latest: Optional[Any] = None
        self.closed = False
        self._subscribers: List[Subscription] = []

    def subscribe(self) -> Subscription:
        """
        Register a new subscriber.

        With `replay_latest`, the subscriber immediately receives the most
        recent item (used for the presence list, which is state, not history).
        """
        subscription = Subscription(self, self.buffer_size)
        if self.replay_latest and self.latest is not None:
            subscription._offer(self.latest)
        if self.closed:
            subscription._offer(_CLOSED)
        else:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, item: Any):
        """Deliver an item to every subscriber without blocking."""
        if self.closed:
            return
        self.latest = item
        for subscription in list(self._subscribers):
            subscription._offer(item)

    def close(self):
        """End every subscription."""
        if self.closed:
            return
        self.closed = True
        for subscription in self._subscribers:
            subscription._offer(_CLOSED)
        self._subscribers.clear()

    def subscriber_count(self) -> int:
        return len(self._subscribers)
