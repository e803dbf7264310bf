"""Test NotificationBus coalescing, ordering, error isolation and hooks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import pytest

from querycore.notify.bus import NotificationBus, Subscribable, Subscription


class NumberBus(NotificationBus[int]):
    """Bus that records listener errors instead of logging them."""

    def __init__(self, scheduler=None) -> None:
        super().__init__(scheduler)
        self.errors: list[Exception] = []

    def emit(self, n: int) -> None:
        self.notify(n)

    def on_notify_error(self, error: Exception) -> None:
        self.errors.append(error)


@dataclass
class Recorder:
    """Callable listener; unhashable because it is a mutable dataclass."""

    name: str
    seen: list = field(default_factory=list)

    def __call__(self, value: int) -> None:
        self.seen.append(value)


@dataclass(frozen=True)
class Tagged:
    """Callable listener whose equality ignores identity."""

    tag: str
    sink: list = field(compare=False, hash=False)

    def __call__(self, value: int) -> None:
        self.sink.append((self.tag, value))


@pytest.fixture
def number_bus(manual_scheduler) -> NumberBus:
    return NumberBus(manual_scheduler)


class TestSubscription:
    def test_counts_follow_subscribe_and_unsubscribe(self, number_bus):
        assert number_bus.listener_count == 0
        assert not number_bus.has_listeners()

        off = number_bus.subscribe(lambda v: None)
        assert number_bus.listener_count == 1
        assert number_bus.has_listeners()

        off()
        assert number_bus.listener_count == 0

    def test_unsubscribe_is_idempotent(self, number_bus):
        off = number_bus.subscribe(lambda v: None)
        off()
        off()
        off.unsubscribe()
        assert number_bus.listener_count == 0
        assert not off.active

    def test_returns_subscription(self, number_bus):
        off = number_bus.subscribe(lambda v: None)
        assert isinstance(off, Subscription)
        assert off.active

    def test_context_manager_unsubscribes(self, number_bus):
        with number_bus.subscribe(lambda v: None):
            assert number_bus.listener_count == 1
        assert number_bus.listener_count == 0

    def test_same_listener_is_registered_once(self, number_bus):
        def listener(v):
            pass

        number_bus.subscribe(listener)
        number_bus.subscribe(listener)
        assert number_bus.listener_count == 1

    def test_unhashable_callable_can_subscribe(self, number_bus, manual_scheduler):
        recorder = Recorder("a")
        off = number_bus.subscribe(recorder)
        assert number_bus.listener_count == 1

        number_bus.emit(4)
        manual_scheduler.run_pending()
        assert recorder.seen == [4]

        off()
        assert number_bus.listener_count == 0

    def test_equal_but_distinct_listeners_are_separate(self, number_bus, manual_scheduler):
        calls = []
        first = Tagged("x", calls)
        second = Tagged("x", calls)
        assert first == second and first is not second

        off_first = number_bus.subscribe(first)
        number_bus.subscribe(second)
        assert number_bus.listener_count == 2

        number_bus.emit(1)
        manual_scheduler.run_pending()
        assert calls == [("x", 1), ("x", 1)]

        off_first()
        assert number_bus.listener_count == 1

    def test_bus_is_subscribable(self, number_bus):
        assert isinstance(number_bus, Subscribable)


class TestCoalescing:
    def test_notify_calls_in_one_tick_deliver_last_value_once(
        self, number_bus, manual_scheduler
    ):
        received = []
        number_bus.subscribe(received.append)

        number_bus.emit(1)
        number_bus.emit(2)
        number_bus.emit(3)

        assert received == []
        assert manual_scheduler.pending == 1

        manual_scheduler.run_pending()
        assert received == [3]

    def test_each_tick_gets_its_own_delivery(self, number_bus, manual_scheduler):
        received = []
        number_bus.subscribe(received.append)

        for value in (10, 20, 30):
            number_bus.emit(value)
            manual_scheduler.run_pending()

        assert received == [10, 20, 30]

    def test_state_flags(self, number_bus, manual_scheduler):
        assert not number_bus.flush_scheduled
        number_bus.emit(1)
        assert number_bus.flush_scheduled
        assert number_bus.has_pending

        manual_scheduler.run_pending()
        assert not number_bus.flush_scheduled
        assert not number_bus.has_pending

    def test_notify_without_listeners_is_harmless(self, number_bus, manual_scheduler):
        number_bus.emit(1)
        manual_scheduler.run_pending()
        assert number_bus.deliveries == 0

    def test_flush_with_nothing_pending_does_nothing(self, number_bus):
        received = []
        number_bus.subscribe(received.append)
        number_bus._flush()
        assert received == []


class TestDeliveryOrder:
    def test_listeners_called_in_subscription_order(self, number_bus, manual_scheduler):
        calls = []
        number_bus.subscribe(lambda v: calls.append(("A", v)))
        number_bus.subscribe(lambda v: calls.append(("B", v)))

        number_bus.emit(7)
        manual_scheduler.run_pending()

        assert calls == [("A", 7), ("B", 7)]

    def test_listener_added_before_flush_receives_value(
        self, number_bus, manual_scheduler
    ):
        received = []
        number_bus.emit(5)
        number_bus.subscribe(received.append)
        manual_scheduler.run_pending()
        assert received == [5]

    def test_listener_removed_before_flush_is_skipped(
        self, number_bus, manual_scheduler
    ):
        received = []
        off = number_bus.subscribe(received.append)
        number_bus.emit(5)
        off()
        manual_scheduler.run_pending()
        assert received == []


class TestErrorIsolation:
    def test_throwing_listener_does_not_stop_others(self, number_bus, manual_scheduler):
        calls = []

        def boom(v):
            raise RuntimeError("boom")

        number_bus.subscribe(boom)
        number_bus.subscribe(calls.append)

        number_bus.emit(42)
        manual_scheduler.run_pending()

        assert calls == [42]
        assert len(number_bus.errors) == 1
        assert str(number_bus.errors[0]) == "boom"
        assert number_bus.error_count == 1
        assert number_bus.deliveries == 1

    def test_each_throw_is_reported_once(self, number_bus, manual_scheduler):
        def boom(v):
            raise ValueError(v)

        number_bus.subscribe(boom)
        number_bus.emit(1)
        manual_scheduler.run_pending()
        number_bus.emit(2)
        manual_scheduler.run_pending()

        assert [e.args[0] for e in number_bus.errors] == [1, 2]

    def test_default_error_report_logs(self, manual_scheduler, caplog):
        bus: NotificationBus[int] = NotificationBus(manual_scheduler)

        def boom(v):
            raise RuntimeError("listener exploded")

        bus.subscribe(boom)
        bus.notify(1)
        with caplog.at_level(logging.ERROR, logger="querycore.notify.bus"):
            manual_scheduler.run_pending()

        assert any("Listener error" in r.getMessage() for r in caplog.records)

    def test_injected_error_reporter(self, manual_scheduler):
        reported = []
        bus: NotificationBus[int] = NotificationBus(
            manual_scheduler, on_notify_error=reported.append,
        )

        def boom(v):
            raise KeyError("k")

        bus.subscribe(boom)
        bus.notify(1)
        manual_scheduler.run_pending()

        assert len(reported) == 1
        assert isinstance(reported[0], KeyError)

    def test_failing_error_reporter_does_not_stop_delivery(self, manual_scheduler):
        calls = []

        def bad_reporter(error):
            raise RuntimeError("reporter down")

        bus: NotificationBus[int] = NotificationBus(
            manual_scheduler, on_notify_error=bad_reporter,
        )

        def boom(v):
            raise ValueError("boom")

        bus.subscribe(boom)
        bus.subscribe(calls.append)
        bus.notify(3)
        manual_scheduler.run_pending()

        assert calls == [3]


class TestUnsubscribeDuringDelivery:
    def test_self_unsubscribe_keeps_iteration_intact(self, number_bus, manual_scheduler):
        calls = []
        off_a: Subscription | None = None

        def listener_a(v):
            calls.append(f"A:{v}")
            off_a()

        off_a = number_bus.subscribe(listener_a)
        number_bus.subscribe(lambda v: calls.append(f"B:{v}"))

        number_bus.emit(99)
        number_bus.emit(100)
        manual_scheduler.run_pending()
        assert calls == ["A:100", "B:100"]

        number_bus.emit(101)
        manual_scheduler.run_pending()
        assert calls == ["A:100", "B:100", "B:101"]


class TestHooks:
    def test_subscribe_hook_fires_on_every_call(self, manual_scheduler):
        events = []
        bus: NotificationBus[int] = NotificationBus(
            manual_scheduler,
            on_subscribe=lambda: events.append("sub"),
            on_unsubscribe=lambda: events.append("unsub"),
        )

        def listener(v):
            pass

        first = bus.subscribe(listener)
        second = bus.subscribe(listener)
        assert events == ["sub", "sub"]

        first()
        second()  # already removed by the first
        first()
        assert events == ["sub", "sub", "unsub"]

    def test_overridden_hooks_track_first_and_last_listener(self, manual_scheduler):
        class Entry(NotificationBus[str]):
            def __init__(self, scheduler):
                super().__init__(scheduler)
                self.active = False

            def on_subscribe(self):
                self.active = True

            def on_unsubscribe(self):
                if not self.has_listeners():
                    self.active = False

        entry = Entry(manual_scheduler)
        off = entry.subscribe(lambda v: None)
        assert entry.active
        off()
        assert not entry.active


class TestEmbedding:
    def test_owner_holds_a_bus(self, manual_scheduler):
        class Counter:
            def __init__(self, scheduler):
                self._count = 0
                self.changes: NotificationBus[int] = NotificationBus(scheduler)

            def increment(self):
                self._count += 1
                self.changes.notify(self._count)

        counter = Counter(manual_scheduler)
        seen = []
        counter.changes.subscribe(seen.append)

        counter.increment()
        counter.increment()
        manual_scheduler.run_pending()

        assert seen == [2]
        assert isinstance(counter.changes, Subscribable)


class TestAsyncioDelivery:
    async def test_batches_until_next_loop_turn(self):
        bus = NumberBus()
        received = []
        bus.subscribe(received.append)

        bus.emit(1)
        bus.emit(2)
        bus.emit(3)
        assert received == []

        await asyncio.sleep(0)
        assert received == [3]

    async def test_delivers_across_loop_turns(self):
        bus = NumberBus()
        received = []
        bus.subscribe(received.append)

        bus.emit(10)
        await asyncio.sleep(0)
        bus.emit(20)
        await asyncio.sleep(0)
        bus.emit(30)
        await asyncio.sleep(0)

        assert received == [10, 20, 30]

    def test_notify_outside_loop_raises_and_leaves_bus_idle(self):
        bus = NumberBus()
        with pytest.raises(RuntimeError):
            bus.emit(1)
        assert not bus.flush_scheduled
        assert not bus.has_pending
