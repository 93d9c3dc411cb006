"""Components — the capability contract and the reactive component base.

``Component`` is what the lifecycle manager drives. ``init`` and ``render``
are required; every hook has a no-op default, so a component opts into a hook
by overriding it rather than by the manager probing for attributes.

``ReactiveComponent`` adds ownership: every signal, derived value, effect and
subscription it creates lands in its scope and is torn down exactly once by
``destroy()`` (which the lifecycle manager calls on unmount).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, TypeVar

from tuirunes.derived import Derived
from tuirunes.effect import Effect, EffectFn
from tuirunes.errors import StateAccessError
from tuirunes.runtime import Runtime, get_runtime
from tuirunes.scope import Scope
from tuirunes.signal import Signal

P = TypeVar("P")
S = TypeVar("S")
T = TypeVar("T")


class Component(ABC, Generic[P, S]):
    """A stateful UI component, as seen by the lifecycle manager."""

    @abstractmethod
    def init(self, props: P) -> S:
        """Build the initial state from props."""

    def update(self, props: P, state: S) -> S:
        """Produce the next state for new props."""
        return state

    @abstractmethod
    def render(self, props: P, state: S) -> Any:
        """Return the view tree. Its shape belongs to the renderer."""

    def on_mount(self, props: P, state: S) -> None:
        pass

    def on_update(self, props: P, state: S, prev_state: S) -> None:
        pass

    def on_unmount(self, state: S) -> None:
        pass

    def cleanup(self, state: S) -> None:
        pass


class ReactiveComponent(Component[P, S]):
    """Component base with component-scoped signals, derived values and effects.

    Usage:
        class Counter(ReactiveComponent):
            def init(self, props):
                self.count = self.signal(props.get("start", 0))
                self.doubled = self.derived(lambda: self.count.read() * 2)
                self.effect(lambda: log.append(self.doubled.read()))
                return {}

            def render(self, props, state):
                return f"{self.count.read()} x2 = {self.doubled.read()}"
    """

    def __init__(self, *, runtime: Runtime | None = None, name: str | None = None) -> None:
        self._runtime = runtime or get_runtime()
        self.scope = Scope(name or type(self).__name__)

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def destroyed(self) -> bool:
        return self.scope.disposed

    def _ensure_alive(self, what: str) -> None:
        if self.scope.disposed:
            raise StateAccessError(f"cannot create {what} on destroyed component {self.scope.name}")

    def signal(
        self,
        initial: T,
        equal: Callable[[Any, Any], bool] | None = None,
        *,
        name: str | None = None,
    ) -> Signal[T]:
        self._ensure_alive("state")
        with self._runtime.scope(self.scope):
            return Signal(initial, equal, name=name, runtime=self._runtime)

    def derived(
        self,
        fn: Callable[[], T],
        equal: Callable[[Any, Any], bool] | None = None,
        *,
        name: str | None = None,
    ) -> Derived[T]:
        self._ensure_alive("derived value")
        with self._runtime.scope(self.scope):
            return Derived(fn, equal, name=name, runtime=self._runtime)

    def effect(self, fn: EffectFn, *, name: str | None = None) -> Effect:
        self._ensure_alive("effect")
        with self._runtime.scope(self.scope):
            eff = Effect(fn, name=name, runtime=self._runtime)
            eff._start()
        return eff

    def subscribe(self, source: Signal | Derived, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to a source owned elsewhere; unsubscribed on destroy()."""
        self._ensure_alive("subscription")
        with self._runtime.scope(self.scope):
            return source.subscribe(callback)

    def destroy(self) -> None:
        """Dispose everything this component created. Idempotent.

        Raises TeardownError after every disposer ran if any of them failed.
        """
        self.scope.dispose()
