"""Batched notification primitive.

A ``NotificationBus`` owns a set of listeners and coalesces ``notify()``
calls issued within one scheduling tick into a single delivery of the
latest value.  Entities that need change notifications hold a bus (or
subclass it); the flush boundary comes from an injected
``DeferredScheduler`` so tests can drive it deterministically.

Delivery rules
--------------
1.  **Last write wins**: ``notify(1); notify(2); notify(3)`` delivers only
    ``3``, once, after the next suspension point.
2.  **Flush-time snapshot**: listeners present when the flush runs get the
    value, in subscription order.  Listeners added after ``notify`` but
    before the flush are included; removed ones are not.
3.  **Isolation**: a listener that raises does not stop the others; the
    error goes to ``on_notify_error``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from querycore.core.scheduler import AsyncioScheduler, DeferredScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class Subscription:
    """Handle returned by ``subscribe``.

    Calling it (or ``unsubscribe()``) removes the listener once; further
    calls are no-ops.  Also works as a context manager.
    """

    __slots__ = ("_release", "_active")

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._release()

    __call__ = unsubscribe

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


@runtime_checkable
class Subscribable(Protocol[T]):
    """Anything listeners can subscribe to."""

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        ...

    @property
    def listener_count(self) -> int:
        ...

    def has_listeners(self) -> bool:
        ...


class NotificationBus(Generic[T]):
    """Listener registry with coalesced, deferred delivery.

    Parameters
    ----------
    scheduler
        Where flushes are deferred to.  Defaults to ``AsyncioScheduler``
        (``loop.call_soon`` on the running loop).
    on_subscribe, on_unsubscribe
        Optional callbacks fired by the default hooks.
    on_notify_error
        Optional ``(error) -> None`` reporter used instead of logging when a
        listener raises.

    Subclasses may override ``on_subscribe``, ``on_unsubscribe`` and
    ``on_notify_error`` directly.
    """

    def __init__(
        self,
        scheduler: DeferredScheduler | None = None,
        *,
        on_subscribe: Callable[[], None] | None = None,
        on_unsubscribe: Callable[[], None] | None = None,
        on_notify_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._scheduler: DeferredScheduler = scheduler or AsyncioScheduler()
        # id(listener) -> listener; registration is by identity, insertion-ordered
        self._listeners: dict[int, Listener[T]] = {}

        self._flush_scheduled = False
        self._has_pending = False
        self._pending: Any = None

        self._subscribe_cb = on_subscribe
        self._unsubscribe_cb = on_unsubscribe
        self._error_cb = on_notify_error

        # Observability
        self._deliveries = 0
        self._error_count = 0

    # -- Core API ----------------------------------------------------------

    def subscribe(self, listener: Listener[T]) -> Subscription:
        """Register *listener* and return its ``Subscription``.

        Listeners are tracked by identity, so unhashable callables work and
        equal-but-distinct listeners get separate entries.  Re-subscribing
        the same object keeps a single entry, but ``on_subscribe`` still
        fires.
        """
        self._listeners[id(listener)] = listener
        self.on_subscribe()

        def release() -> None:
            if self._listeners.get(id(listener)) is listener:
                del self._listeners[id(listener)]
                self.on_unsubscribe()

        return Subscription(release)

    def notify(self, value: T) -> None:
        """Queue *value* for delivery at the next flush.

        Calls before the flush overwrite each other; only one flush is ever
        scheduled at a time.
        """
        self._pending = value
        self._has_pending = True

        if self._flush_scheduled:
            return
        try:
            self._scheduler.schedule(self._flush)
        except Exception:
            self._has_pending = False
            self._pending = None
            raise
        self._flush_scheduled = True

    def _flush(self) -> None:
        self._flush_scheduled = False
        if not self._has_pending:
            return

        payload = self._pending
        self._has_pending = False
        self._pending = None

        for listener in list(self._listeners.values()):
            try:
                listener(payload)
                self._deliveries += 1
            except Exception as exc:
                self._error_count += 1
                try:
                    self.on_notify_error(exc)
                except Exception:
                    logger.warning("on_notify_error hook failed", exc_info=True)

    # -- Hooks -------------------------------------------------------------

    def on_subscribe(self) -> None:
        """Called on every ``subscribe``; start work on first listener here."""
        if self._subscribe_cb is not None:
            self._subscribe_cb()

    def on_unsubscribe(self) -> None:
        """Called when a listener is actually removed."""
        if self._unsubscribe_cb is not None:
            self._unsubscribe_cb()

    def on_notify_error(self, error: Exception) -> None:
        """Report a listener failure. Logs by default."""
        if self._error_cb is not None:
            self._error_cb(error)
            return
        logger.error(
            "Listener error in %s: %s",
            type(self).__name__,
            error,
            exc_info=error,
        )

    # -- Introspection -----------------------------------------------------

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def has_listeners(self) -> bool:
        return bool(self._listeners)

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_scheduled

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    @property
    def deliveries(self) -> int:
        """Successful listener invocations so far."""
        return self._deliveries

    @property
    def error_count(self) -> int:
        """Listener invocations that raised."""
        return self._error_count
