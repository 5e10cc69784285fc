"""Change hub: fan-out of "something changed" signals to live subscribers.

Each subscriber owns a one-slot channel. A broadcast fills every empty slot
and leaves full ones alone, so a subscriber that has not caught up yet sees a
single pending signal no matter how many changes happened in between.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Iterator

logger = logging.getLogger(__name__)


class Subscription:
    """One subscriber's channel. Created by ChangeHub.subscribe()."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

    def _offer(self) -> None:
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)

    def notify(self) -> None:
        """Deliver a signal without blocking; coalesces with one already pending."""
        loop = self._loop
        if loop is None or loop.is_closed():
            self._offer()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._offer()
        else:
            loop.call_soon_threadsafe(self._offer)

    async def wait(self) -> None:
        """Block until a signal is pending, then consume it."""
        await self._queue.get()

    def consume(self) -> bool:
        """Take the pending signal if there is one."""
        try:
            self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return False
        return True


class ChangeHub:
    """Registry of live subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: set[Subscription] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription()
        with self._lock:
            self._subscribers.add(sub)
        logger.debug("Subscriber added (%d live)", len(self))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)
        logger.debug("Subscriber removed (%d live)", len(self))

    @contextlib.contextmanager
    def subscription(self) -> Iterator[Subscription]:
        """subscribe() for the duration of a block, always unsubscribing."""
        sub = self.subscribe()
        try:
            yield sub
        finally:
            self.unsubscribe(sub)

    def broadcast(self) -> None:
        with self._lock:
            for sub in self._subscribers:
                sub.notify()
