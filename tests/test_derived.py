"""Tests for Derived values."""

import pytest

from tuirunes import (
    Derived,
    ReactiveCycleError,
    batch,
    combine_latest,
    create_derived,
    create_effect,
    create_selector,
    create_signal,
    derived,
)


class TestDerived:
    def test_eager_eval(self):
        call_count = 0
        s = create_signal(5)

        def fn():
            nonlocal call_count
            call_count += 1
            return s.read() * 2

        d = create_derived(fn)
        assert call_count == 1  # evaluated on creation
        assert d.read() == 10
        assert d() == 10
        assert call_count == 1  # cached, no re-eval

    def test_recomputes_on_change(self):
        s = create_signal(5)
        d = create_derived(lambda: s.read() * 2)
        s.set(10)
        assert d.read() == 20

    def test_dynamic_dependencies(self):
        """Only the branch actually taken is a dependency."""
        runs = []
        flag = create_signal(True)
        a = create_signal(1)
        b = create_signal(2)

        def pick():
            runs.append(1)
            return a.read() if flag.read() else b.read()

        d = create_derived(pick)
        assert d.read() == 1
        b.set(5)
        assert len(runs) == 1  # b is not a dependency yet

        flag.set(False)
        assert d.read() == 5
        assert d not in a._observers
        a.set(100)
        assert len(runs) == 2  # a is no longer a dependency

    def test_chained(self):
        s = create_signal(3)
        doubled = create_derived(lambda: s.read() * 2)
        quadrupled = create_derived(lambda: doubled.read() * 2)
        assert quadrupled.read() == 12
        s.set(5)
        assert quadrupled.read() == 20

    def test_equal_value_stops_cascade(self):
        s = create_signal(1)
        parity = create_derived(lambda: s.read() % 2)
        downstream_runs = []
        label = create_derived(lambda: downstream_runs.append(1) or f"parity={parity.read()}")
        log = []
        create_effect(lambda: log.append(label.read()))

        s.set(3)  # parity unchanged
        assert len(downstream_runs) == 1
        assert log == ["parity=1"]

        s.set(4)
        assert len(downstream_runs) == 2
        assert log == ["parity=1", "parity=0"]

    def test_diamond_recomputes_once(self):
        a = create_signal(1)
        b = create_derived(lambda: a.read() + 1)
        c = create_derived(lambda: a.read() * 2)
        seen = []

        def join():
            value = b.read() + c.read()
            seen.append(value)
            return value

        d = create_derived(join)
        a.set(5)
        assert seen == [4, 16]  # never the mixed 6 + 2 or 2 + 10
        assert d.read() == 16

    def test_new_dependency_mid_pass_sees_settled_value(self):
        """A derived first read during a pass is brought up to date before use."""
        holder = {}
        s = create_signal(1)
        show = create_signal(False)
        view = create_derived(lambda: holder["x"].read() if show.read() else -1)
        x_runs = []
        holder["x"] = create_derived(lambda: x_runs.append(1) or s.read() * 2)

        def body():
            s.set(2)
            show.set(True)

        batch(body)
        assert view.read() == 4
        assert len(x_runs) == 2

    def test_failure_keeps_stale_value(self, reported):
        s = create_signal(1)
        d = create_derived(lambda: 10 // s.read())
        log = []
        create_effect(lambda: log.append(d.read()))

        s.set(0)
        assert d.read() == 10
        assert log == [10]
        assert isinstance(reported[0][0], ZeroDivisionError)
        assert reported[0][1] is d

        s.set(2)  # dependencies survived the failure
        assert d.read() == 5
        assert log == [10, 5]

    def test_failure_does_not_block_siblings(self, reported):
        s = create_signal(1)
        create_derived(lambda: 1 // (s.read() - 2))
        ok = create_derived(lambda: s.read() + 1)
        s.set(2)
        assert ok.read() == 3
        assert len(reported) == 1

    def test_creation_failure_raises(self):
        with pytest.raises(ZeroDivisionError):
            create_derived(lambda: 1 // 0)

    def test_subscribe(self):
        s = create_signal(1)
        d = create_derived(lambda: s.read() * 2)
        log = []
        d.subscribe(log.append)
        s.set(2)
        s.set(2)
        assert log == [2, 4]

    def test_dispose(self):
        s = create_signal(5)
        d = create_derived(lambda: s.read() * 2)
        d.dispose()
        d.dispose()
        s.set(10)
        assert d.read() == 10  # inert: keeps the last value
        assert d.disposed
        assert d not in s._observers

    def test_repr(self):
        d = create_derived(lambda: 1, name="one")
        assert repr(d) == "Derived(one, cached=1)"


class TestCycles:
    def test_self_read_raises(self):
        holder = {}
        s = create_signal(0)
        d = create_derived(lambda: s.read() + (holder["d"].read() if "d" in holder else 0))
        holder["d"] = d
        with pytest.raises(ReactiveCycleError):
            s.set(1)

    def test_indirect_cycle_raises(self):
        ref = create_signal(None)
        a = create_derived(lambda: (ref.read().read() if ref.read() is not None else 0) + 1, name="a")
        b = create_derived(lambda: a.read() + 1, name="b")
        with pytest.raises(ReactiveCycleError):
            ref.set(b)

    def test_graph_usable_after_cycle_error(self):
        holder = {}
        s = create_signal(0)
        d = create_derived(lambda: s.read() + (holder["d"].read() if "d" in holder else 0))
        holder["d"] = d
        with pytest.raises(ReactiveCycleError):
            s.set(1)
        del holder["d"]
        other = create_signal(1)
        doubled = create_derived(lambda: other.read() * 2)
        other.set(4)
        assert doubled.read() == 8


class TestDerivedDecorator:
    def test_decorator_factory(self):
        s = create_signal(7)

        @derived
        def doubled():
            return s.read() * 2

        assert isinstance(doubled, Derived)
        assert doubled.read() == 14
        s.set(3)
        assert doubled.read() == 6
        assert doubled.name == "doubled"


class TestSelectorsAndCombinators:
    def test_selector_ignores_unrelated_changes(self):
        app = create_signal({"user": "Ada", "clock": 0})
        user = create_selector(app, lambda state: state["user"])
        log = []
        create_effect(lambda: log.append(user.read()))

        app.update(lambda state: {**state, "clock": 1})
        assert log == ["Ada"]
        app.update(lambda state: {**state, "user": "Grace"})
        assert log == ["Ada", "Grace"]

    def test_selector_custom_equality(self):
        items = create_signal([3, 1, 2])
        ordered = create_selector(items, sorted, lambda a, b: set(a) == set(b))
        items.set([2, 3, 1])
        assert ordered.read() == [1, 2, 3]

    def test_combine_latest(self):
        width = create_signal(80)
        height = create_signal(24)
        size = combine_latest([width, height], lambda w, h: f"{w}x{h}")
        assert size.read() == "80x24"

        def resize():
            width.set(120)
            height.set(40)

        batch(resize)
        assert size.read() == "120x40"
