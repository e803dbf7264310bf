"""Deferred-task abstraction for notification flushes.

AsyncioScheduler: runs callbacks on the event loop right after the current
    synchronous work (``loop.call_soon``).
ManualScheduler: queues callbacks until the owner drains them (tests,
    synchronous embedding).

Notification code never touches the event loop directly; it goes through
a DeferredScheduler.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


@runtime_checkable
class DeferredScheduler(Protocol):
    """Schedules one callback to run after the current synchronous work."""

    def schedule(self, callback: Callback) -> None:
        ...


class AsyncioScheduler:
    """Event-loop backed scheduler. Default for NotificationBus.

    Without an explicit loop the running loop is looked up on every call,
    so scheduling outside of a running loop raises ``RuntimeError``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def schedule(self, callback: Callback) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon(callback)


class ManualScheduler:
    """Deterministic scheduler. Callbacks run only when drained explicitly."""

    def __init__(self) -> None:
        self._queue: deque[Callback] = deque()

    def schedule(self, callback: Callback) -> None:
        self._queue.append(callback)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run_pending(self) -> int:
        """Run the callbacks queued so far and return how many ran.

        Callbacks scheduled while draining stay queued for the next call,
        mirroring one turn of an event loop.
        """
        count = len(self._queue)
        for _ in range(count):
            callback = self._queue.popleft()
            callback()
        return count

    def run_until_idle(self, max_rounds: int = 1000) -> int:
        """Drain repeatedly until no callbacks remain."""
        total = 0
        for _ in range(max_rounds):
            ran = self.run_pending()
            if ran == 0:
                return total
            total += ran
        logger.warning(
            "ManualScheduler still busy after %d rounds (%d queued)",
            max_rounds,
            len(self._queue),
        )
        return total
