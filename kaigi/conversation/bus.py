"""In-process publish/subscribe bus with bounded, lossy per-subscriber queues."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import List, Optional, Tuple

from .messages import Message

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_BUFFER = 16

_END_OF_STREAM = object()


class BusClosedError(Exception):
    """Raised when broadcasting on a bus that has been closed."""


class Subscription:
    """One subscriber's delivery queue.

    Yields messages in the order they were enqueued and ends once the bus is
    closed and everything already enqueued has been read.
    """

    def __init__(self, maxsize: int = DEFAULT_SUBSCRIBER_BUFFER) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, int(maxsize)))
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, message: Message) -> bool:
        """Enqueue without blocking. Returns False when the message was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # A full queue needs no marker: the reader drains it and then sees
        # an empty, closed queue.
        try:
            self._queue.put_nowait(_END_OF_STREAM)
        except asyncio.QueueFull:
            pass

    async def get(self) -> Optional[Message]:
        """Next message, or None once the stream is exhausted."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message


class MessageBus:
    """Fans every broadcast out to every current subscriber.

    Delivery is best-effort: a subscriber whose queue is full misses that
    message and nobody else is delayed. The subscriber list is guarded by a
    lock; broadcasts only hold it long enough to take a snapshot.
    """

    def __init__(self, subscriber_buffer: int = DEFAULT_SUBSCRIBER_BUFFER) -> None:
        self.subscriber_buffer = int(subscriber_buffer)
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False
        self.dropped_total = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, message: Message) -> None:
        with self._lock:
            if self._closed:
                raise BusClosedError("bus is closed")
            targets: Tuple[Subscription, ...] = tuple(self._subscribers)

        for index, subscription in enumerate(targets):
            if not subscription.offer(message):
                self.dropped_total += 1
                logger.debug(
                    f"[BUS] Dropped {message.kind.value} message for subscriber #{index} "
                    f"(dropped so far: {subscription.dropped})"
                )

    def subscribe(self) -> Subscription:
        subscription = Subscription(self.subscriber_buffer)
        with self._lock:
            if self._closed:
                subscription.close()
                return subscription
            self._subscribers.append(subscription)
        return subscription

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []

        for subscription in subscribers:
            subscription.close()
        logger.info(f"[BUS] Closed ({len(subscribers)} subscribers, {self.dropped_total} drops)")
