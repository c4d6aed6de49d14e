"""In-process fan-out of lead change notifications."""
from __future__ import annotations

import asyncio
import logging

from ..core.config import settings
from ..schemas.changes import ChangeOp, LeadChange
from ..schemas.leads import LeadSnapshot

logger = logging.getLogger(__name__)


class LeadSubscription:
    """Bounded queue of changes for one consumer.

    Iterating yields changes as they arrive. When the queue overflows the
    newest change is dropped and the subscription is flagged as lagged so the
    consumer can resynchronise.
    """

    def __init__(self, broker: "LeadChangeBroker", maxsize: int) -> None:
        self._broker = broker
        self._queue: asyncio.Queue[LeadChange] = asyncio.Queue(maxsize=maxsize)
        self._lagged = False

    def push(self, change: LeadChange) -> bool:
        try:
            self._queue.put_nowait(change)
        except asyncio.QueueFull:
            self._lagged = True
            return False
        return True

    def take_lagged(self) -> bool:
        """Return whether changes were dropped since the last call, clearing the flag."""

        lagged, self._lagged = self._lagged, False
        return lagged

    def drain(self) -> int:
        """Discard every queued change and return how many were dropped."""

        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        return dropped

    async def get(self) -> LeadChange:
        return await self._queue.get()

    def __aiter__(self) -> "LeadSubscription":
        return self

    async def __anext__(self) -> LeadChange:
        return await self.get()

    async def __aenter__(self) -> "LeadSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._broker.unsubscribe(self)
        return False


class LeadChangeBroker:
    """Publish lead row mutations to every live subscription."""

    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or settings.change_queue_size
        self._subscriptions: set[LeadSubscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> LeadSubscription:
        subscription = LeadSubscription(self, self._queue_size)
        self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: LeadSubscription) -> None:
        self._subscriptions.discard(subscription)

    def publish(self, change: LeadChange) -> int:
        """Deliver ``change`` to all subscribers and return how many accepted it."""

        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.push(change):
                delivered += 1
            else:
                logger.warning("Dropped lead change %s for a lagging subscriber", change.event_id)
        return delivered


def emit(
    op: ChangeOp,
    *,
    before: LeadSnapshot | None = None,
    after: LeadSnapshot | None = None,
) -> LeadChange:
    """Build and publish a change on the shared broker."""

    change = LeadChange(op=op, before=before, after=after)
    broker.publish(change)
    return change


broker = LeadChangeBroker()
