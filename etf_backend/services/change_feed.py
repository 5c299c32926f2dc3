"""In-process change stream for crypto_prices.

The price store publishes one ChangeEvent per committed row write; each
websocket connection holds a Subscription and drains it in order. Events
for a symbol reach every subscriber in write order because each
subscriber has a single FIFO queue and publish() is synchronous.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from etf_backend.schemas.price import ChangeEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000

_CLOSED = object()


class Subscription:
    """One consumer's view of the change stream.

    Iterate with ``async for``. After ``unsubscribe()`` returns, the
    iterator yields nothing further, even if events were already queued.
    """

    def __init__(self, feed: "PriceChangeFeed", maxsize: int):
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: ChangeEvent) -> bool:
        """Enqueue without blocking. Returns False if the subscriber fell behind."""
        if self._closed:
            return True
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            return False

    def _close(self):
        if self._closed:
            return
        self._closed = True
        # Wake a pending get(); drop whatever is queued
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def unsubscribe(self):
        """Stop delivery. Safe to call more than once."""
        self._feed._remove(self)
        self._close()

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return item


class PriceChangeFeed:
    """Fan-out of price row changes to all live subscriptions."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._maxsize = maxsize
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def subscribe(self) -> Subscription:
        """Register a new subscription; returns once it is live."""
        sub = Subscription(self, self._maxsize)
        self._subscriptions.append(sub)
        logger.debug(f"Change feed subscriber added ({len(self._subscriptions)} total)")
        return sub

    def publish(self, event: ChangeEvent):
        """Deliver an event to every subscriber. Never blocks."""
        for sub in list(self._subscriptions):
            if not sub._offer(event):
                # Slow consumer: cut it loose so it reconnects and reloads
                logger.warning("Change feed subscriber overflowed; closing it")
                sub.overflowed = True
                sub.unsubscribe()

    def close(self):
        """Close every subscription (shutdown)."""
        for sub in list(self._subscriptions):
            sub.unsubscribe()

    def _remove(self, sub: Subscription):
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)


price_feed = PriceChangeFeed()
