"""Derived values — read-only signals computed from other signals.

A Derived wraps a function. It evaluates eagerly on creation, tracking which
sources the function reads, and caches the result. When a source changes the
runtime recomputes it once per propagation pass, after all of its own sources
have settled. If the new value equals the cached one, nothing downstream is
notified.

Reading a Derived outside a propagation pass never recomputes: it returns
the cached value.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from tuirunes._tracking import Computation, Source, default_equal, detach, rebind
from tuirunes.errors import ReactiveCycleError
from tuirunes.runtime import Runtime, get_runtime

T = TypeVar("T")


class Derived(Source, Computation, Generic[T]):
    """A cached value that auto-tracks its dependencies."""

    def __init__(
        self,
        fn: Callable[[], T],
        equal: Callable[[Any, Any], bool] | None = None,
        *,
        name: str | None = None,
        runtime: Runtime | None = None,
    ) -> None:
        super().__init__(runtime or get_runtime(), name or getattr(fn, "__name__", None))
        self._fn = fn
        self._equal = equal or default_equal
        self._computing = False
        self._disposed = False
        self._value = self._evaluate()
        self._owner = self._runtime.own(self.dispose)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def read(self) -> T:
        """Read the cached value, registering the dependency if tracked."""
        if self._computing:
            raise ReactiveCycleError(f"{self._label()} read itself while computing")
        self._track()
        self._runtime.settle(self)
        return self._value

    __call__ = read

    def _evaluate(self) -> T:
        """Run the function under a fresh tracking frame and adopt its reads."""
        with self._runtime.tracking(self) as frame:
            self._computing = True
            try:
                value = self._fn()
            finally:
                self._computing = False
        rebind(self, frame.sources)
        return value

    def _recompute(self) -> bool:
        """Called by the runtime during a pass. Returns True if the value changed.

        A failing function leaves the previous value and dependencies in
        place and is reported through the runtime's error handler.
        """
        if self._disposed:
            return False
        try:
            value = self._evaluate()
        except ReactiveCycleError:
            raise
        except Exception as exc:
            self._runtime.report_error(exc, self)
            return False
        if self._equal(self._value, value):
            return False
        self._value = value
        return True

    def dispose(self) -> None:
        """Disconnect from all dependencies. The cached value stays readable."""
        if self._disposed:
            return
        self._disposed = True
        detach(self)
        self._observers.clear()
        self._subscribers.clear()
        self._owner.discard(self.dispose)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"cached={self._value!r}"
        return f"Derived({self._label()}, {state})"


def create_derived(
    fn: Callable[[], T],
    equal: Callable[[Any, Any], bool] | None = None,
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Derived[T]:
    """Create a Derived from a function.

    Usage:
        counter = create_signal(0)
        doubled = create_derived(lambda: counter.read() * 2)

        doubled.read()  # 0
        counter.set(5)
        doubled.read()  # 10
    """
    return Derived(fn, equal, name=name, runtime=runtime)


def derived(fn: Callable[[], T]) -> Derived[T]:
    """Decorator form of create_derived.

    Usage:
        @derived
        def full_name():
            return f"{first.read()} {last.read()}"
    """
    return Derived(fn)


def create_selector(
    source: Source,
    selector: Callable[[Any], T],
    equal: Callable[[Any, Any], bool] | None = None,
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Derived[T]:
    """Derive one slice of ``source``. Dependents only react when the slice changes.

    Usage:
        app = create_signal({"user": {"name": "Ada"}, "clock": 0})
        user_name = create_selector(app, lambda state: state["user"]["name"])
        app.update(lambda s: {**s, "clock": 1})   # user_name dependents stay quiet
    """
    return Derived(lambda: selector(source.read()), equal, name=name, runtime=runtime)


def combine_latest(
    sources: list[Source],
    combiner: Callable[..., T],
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Derived[T]:
    """Derive ``combiner(*values)`` from the current value of every source."""
    return Derived(
        lambda: combiner(*[source.read() for source in sources]),
        name=name,
        runtime=runtime,
    )
