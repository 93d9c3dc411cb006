"""Signals — mutable reactive cells that track their readers.

When a Signal is read inside a derived value or an effect, the dependency is
registered automatically. When it changes, the runtime runs a propagation
pass (or defers it to the enclosing batch).

Thread safety: after set_scheduler(), any .set() from a background thread is
auto-marshalled onto the scheduler thread. Scheduler-thread writes remain
synchronous.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, TypeVar

from tuirunes._tracking import Source, default_equal
from tuirunes.runtime import Runtime, get_runtime

logger = logging.getLogger(__name__)

T = TypeVar("T")

Equality = Callable[[Any, Any], bool]


class Signal(Source, Generic[T]):
    """A single reactive value with automatic dependency tracking."""

    def __init__(
        self,
        value: T,
        equal: Equality | None = None,
        *,
        name: str | None = None,
        runtime: Runtime | None = None,
    ) -> None:
        super().__init__(runtime or get_runtime(), name)
        self._value = value
        self._equal = equal or default_equal

    def read(self) -> T:
        """Read the value. If inside a derivation, registers the dependency."""
        self._track()
        return self._value

    __call__ = read

    def set(self, value: T) -> None:
        """Write a new value. Auto-marshals from background threads."""
        if not self._runtime.marshal(lambda v=value: self._set_direct(v)):
            self._set_direct(value)

    def _set_direct(self, value: T) -> None:
        if self._equal(self._value, value):
            return
        self._runtime.write(self, value)

    def update(self, fn: Callable[[T], T]) -> None:
        """Set the result of ``fn(current)``. The read is not tracked."""
        self.set(fn(self._value))

    def __repr__(self) -> str:
        if self.name:
            return f"Signal({self.name}={self._value!r})"
        return f"Signal({self._value!r})"


class Bindable(Signal[T]):
    """A signal for two-way bindings that transforms and validates writes.

    ``transform`` rewrites every incoming value. ``validate`` then returns
    True to accept, False to reject silently, or a message string to reject
    with a logged warning.
    """

    def __init__(
        self,
        value: T,
        equal: Equality | None = None,
        *,
        validate: Callable[[T], bool | str] | None = None,
        transform: Callable[[T], T] | None = None,
        name: str | None = None,
        runtime: Runtime | None = None,
    ) -> None:
        super().__init__(value, equal, name=name, runtime=runtime)
        self.validate = validate
        self.transform = transform

    def _set_direct(self, value: T) -> None:
        if self.transform is not None:
            value = self.transform(value)
        if self.validate is not None:
            verdict = self.validate(value)
            if isinstance(verdict, str):
                logger.warning("Rejected %r for %r: %s", value, self, verdict)
                return
            if not verdict:
                return
        super()._set_direct(value)

    def __repr__(self) -> str:
        return "Bindable" + super().__repr__()[len("Signal"):]


def create_signal(
    initial: T,
    equal: Equality | None = None,
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Signal[T]:
    """Create a Signal.

    Usage:
        counter = create_signal(0)
        counter.read()        # 0
        counter.set(5)
        counter.update(lambda n: n + 1)
        counter()             # 6
    """
    return Signal(initial, equal, name=name, runtime=runtime)


def create_bindable(
    initial: T,
    *,
    validate: Callable[[T], bool | str] | None = None,
    transform: Callable[[T], T] | None = None,
    equal: Equality | None = None,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Bindable[T]:
    """Create a Bindable.

    Usage:
        age = create_bindable(
            0,
            transform=int,
            validate=lambda v: v >= 0 or "age must be positive",
        )
        age.set("42")   # stored as 42
        age.set(-1)     # rejected, warning logged
    """
    return Bindable(
        initial, equal, validate=validate, transform=transform, name=name, runtime=runtime
    )
