"""Push notifications for changes to the donations table.

Events only tell a listener that its rows changed; listeners re-fetch.
Publishing happens from sync route handlers in the threadpool, so delivery
hops onto each subscriber's event loop.
"""
import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import Annotated, Iterator, Optional, Set

from fastapi import Depends

from schemas import ChangeEvent

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, identity_id: Optional[str], loop: asyncio.AbstractEventLoop):
        self.identity_id = identity_id
        self.loop = loop
        self.queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue()

    def wants(self, event: ChangeEvent) -> bool:
        if self.identity_id is None:
            return True
        return self.identity_id in (event.donor_id, event.volunteer_id)

    async def get(self) -> ChangeEvent:
        return await self.queue.get()


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: Set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, identity_id: Optional[str]) -> Subscription:
        """Register a listener; must be called from inside a running loop.

        `identity_id=None` receives every event.
        """
        sub = Subscription(identity_id, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(sub)

    @contextmanager
    def listen(self, identity_id: Optional[str]) -> Iterator[Subscription]:
        sub = self.subscribe(identity_id)
        try:
            yield sub
        finally:
            self.unsubscribe(sub)

    def publish(self, event: ChangeEvent) -> int:
        """Fan the event out; returns how many listeners it was sent to."""
        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.wants(event)]

        delivered = 0
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub.queue.put_nowait, event)
                delivered += 1
            except RuntimeError:
                logger.debug("Dropping subscriber on closed loop (%s)", sub.identity_id)
                self.unsubscribe(sub)
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)


feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return feed


ChangeFeedDep = Annotated[ChangeFeed, Depends(get_change_feed)]
