"""Tests for Signal and Bindable."""

import logging
import threading

import pytest

from tuirunes import Signal, batch, create_bindable, create_effect, create_signal


class TestSignal:
    def test_read_set(self):
        s = create_signal(42)
        assert s.read() == 42
        s.set(100)
        assert s.read() == 100
        assert s() == 100

    def test_update(self):
        s = create_signal(1)
        s.update(lambda n: n + 1)
        assert s.read() == 2

    def test_dedup(self):
        """Setting an equal value triggers nothing."""
        s = create_signal(42)
        log = []
        create_effect(lambda: log.append(s.read()))
        assert log == [42]
        s.set(42)
        assert log == [42]

    def test_structural_equality_by_default(self):
        s = create_signal([1, 2])
        log = []
        s.subscribe(log.append)
        s.set([1, 2])
        assert log == [[1, 2]]

    def test_custom_equality(self):
        s = create_signal("abc", equal=lambda a, b: a.lower() == b.lower())
        log = []
        create_effect(lambda: log.append(s.read()))
        s.set("ABC")
        assert log == ["abc"]
        assert s.read() == "abc"
        s.set("abd")
        assert log == ["abc", "abd"]

    def test_read_your_write_inside_batch(self):
        s = create_signal(0)
        seen = []

        def body():
            s.set(5)
            seen.append(s.read())

        batch(body)
        assert seen == [5]

    def test_peek_does_not_track(self):
        a = create_signal(1)
        b = create_signal(10)
        log = []
        create_effect(lambda: log.append(a.read() + b.peek()))
        b.set(20)
        assert log == [11]
        a.set(2)
        assert log == [11, 22]

    def test_repr(self):
        assert "Signal(5)" in repr(Signal(5))
        assert "count=5" in repr(Signal(5, name="count"))


class TestSubscribe:
    def test_called_immediately(self):
        s = create_signal(1)
        log = []
        s.subscribe(log.append)
        assert log == [1]

    def test_once_per_distinct_value(self):
        s = create_signal(1)
        log = []
        s.subscribe(log.append)
        s.set(2)
        s.set(2)
        s.set(3)
        assert log == [1, 2, 3]

    def test_unsubscribe_is_idempotent(self):
        s = create_signal(1)
        log = []
        unsubscribe = s.subscribe(log.append)
        unsubscribe()
        unsubscribe()
        s.set(2)
        assert log == [1]
        assert s._subscribers == {}

    def test_removal_during_notification(self):
        """A handle removed mid-notification is not called afterwards."""
        s = create_signal(0)
        log = []
        handles = {}

        def first(value):
            log.append(("first", value))
            if value == 1:
                handles["second"]()

        s.subscribe(first)
        handles["second"] = s.subscribe(lambda v: log.append(("second", v)))
        s.set(1)
        assert log == [("first", 0), ("second", 0), ("first", 1)]

    def test_failing_subscriber_is_isolated(self, reported):
        s = create_signal(0)
        log = []

        def bad(value):
            if value:
                raise RuntimeError("subscriber broke")

        s.subscribe(bad)
        s.subscribe(log.append)
        s.set(1)
        assert log == [0, 1]
        assert len(reported) == 1
        assert isinstance(reported[0][0], RuntimeError)

    def test_initial_call_is_not_tracked_by_enclosing_effect(self):
        s = create_signal(0)
        other = create_signal("x")
        runs = []

        def body():
            runs.append(1)
            s.subscribe(lambda value: other.read())

        create_effect(body)
        other.set("y")
        assert len(runs) == 1

    def test_batched_revert_does_not_notify(self):
        s = create_signal(0)
        log = []
        s.subscribe(log.append)

        def body():
            s.set(1)
            s.set(0)

        batch(body)
        assert log == [0]


class TestBindable:
    def test_transform(self):
        b = create_bindable("x", transform=str.upper)
        b.set("abc")
        assert b.read() == "ABC"

    def test_validate_rejects_silently(self):
        b = create_bindable(1, validate=lambda v: v > 0)
        b.set(-1)
        assert b.read() == 1
        b.set(3)
        assert b.read() == 3

    def test_validate_message_is_logged(self, caplog):
        b = create_bindable(1, validate=lambda v: v > 0 or "must be positive")
        with caplog.at_level(logging.WARNING, logger="tuirunes.signal"):
            b.set(-5)
        assert b.read() == 1
        assert "must be positive" in caplog.text

    def test_transform_runs_before_validate(self):
        b = create_bindable(0, transform=int, validate=lambda v: v < 100)
        b.set("42")
        assert b.read() == 42
        b.set("420")
        assert b.read() == 42

    def test_repr(self):
        assert repr(create_bindable(3)).startswith("Bindable(")


class TestSchedulerMarshal:
    def test_background_write_is_marshaled(self, runtime):
        queued = []
        runtime.set_scheduler(queued.append)
        try:
            s = create_signal(1)
            t = threading.Thread(target=lambda: s.set(2))
            t.start()
            t.join()
            assert s.read() == 1
            assert len(queued) == 1

            queued[0]()
            assert s.read() == 2

            # Scheduler-thread writes stay synchronous.
            s.set(3)
            assert s.read() == 3
            assert len(queued) == 1
        finally:
            runtime.set_scheduler(None)

    def test_no_scheduler_writes_in_place(self):
        s = create_signal(1)
        t = threading.Thread(target=lambda: s.set(2))
        t.start()
        t.join()
        assert s.read() == 2


@pytest.mark.parametrize("value", [0, "", None, (1, 2), {"a": 1}])
def test_set_then_read_returns_value(value):
    s = create_signal(object())
    s.set(value)
    assert s.read() == value
