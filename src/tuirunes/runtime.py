"""Runtime — the context every signal, derived value and effect belongs to.

A Runtime owns the tracking frame stack, the batch frame, the owner scope
stack and the error handler. It is an ordinary object: construct one, use it
as a context manager to make it the active runtime, and tear it down when
done. Factories that are not given a runtime use ``get_runtime()``.

Propagation: a write either joins the active batch frame or starts a
propagation pass immediately. A pass

1. drops written signals whose final value equals their pre-batch value,
2. collects every derived value and effect reachable from the changed signals,
3. orders the derived values topologically (cycles raise ReactiveCycleError),
4. recomputes each of them at most once, and only if a source changed,
5. notifies subscribers of every changed signal and derived value,
6. runs each affected effect once, after everything above is stable.

Writes made while a pass is running are queued and flushed as a follow-up
pass. This is what keeps the graph glitch-free: nothing downstream ever sees
one of two batched writes without the other.

Thread safety: the graph is single-threaded. Call set_scheduler() once from
the UI thread; after that a Signal.set() from any other thread is marshalled
through the scheduler instead of propagating on the foreign thread.
"""

from __future__ import annotations

import contextvars
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from tuirunes._tracking import (
    Computation,
    Node,
    Source,
    TrackingFrame,
    topological_order,
)
from tuirunes.errors import ReactiveCycleError
from tuirunes.scope import Disposer, Scope

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorHandler = Callable[[BaseException, Any], None]

DEFAULT_MAX_PASSES = 100


class _Pass:
    """Bookkeeping for one propagation pass."""

    __slots__ = ("stale", "settling", "changed")

    def __init__(self, stale: set, changed: dict) -> None:
        self.stale = stale
        self.settling: set = set()
        self.changed = changed


class Runtime:
    """Reactive runtime: tracking, batching, propagation and ownership."""

    def __init__(
        self,
        error_handler: ErrorHandler | None = None,
        *,
        max_passes: int = DEFAULT_MAX_PASSES,
        name: str = "runtime",
    ) -> None:
        self.name = name
        self.max_passes = max_passes
        self._error_handler = error_handler
        self._frames: list[TrackingFrame] = []
        self._root = Scope(f"{name}:root")
        self._owners: list[Scope] = [self._root]
        # Signals written since the batch began -> value before the first write.
        self._dirty: dict[Any, Any] = {}
        self._batch_depth = 0
        self._propagating = False
        self._pass: _Pass | None = None
        # Effects created mid-batch or mid-pass, first run once writes settle.
        self._deferred: list = []
        self._scheduler: Callable[[Callable[[], None]], Any] | None = None
        self._scheduler_thread: threading.Thread | None = None
        self._tokens: list[contextvars.Token] = []

    # ─── Activation ──────────────────────────────────────────────────────

    def activate(self) -> Runtime:
        """Make this the runtime returned by get_runtime() in this context."""
        self._tokens.append(_active_runtime.set(self))
        return self

    def deactivate(self) -> None:
        _active_runtime.reset(self._tokens.pop())

    def teardown(self) -> None:
        """Dispose everything owned by the root scope. The runtime stays usable."""
        root, self._root = self._root, Scope(f"{self.name}:root")
        self._owners = [self._root]
        self._dirty.clear()
        self._deferred.clear()
        root.dispose()

    def __enter__(self) -> Runtime:
        return self.activate()

    def __exit__(self, *exc_info) -> None:
        try:
            self.teardown()
        finally:
            self.deactivate()

    # ─── Tracking ────────────────────────────────────────────────────────

    @property
    def current_frame(self) -> TrackingFrame | None:
        return self._frames[-1] if self._frames else None

    @contextmanager
    def tracking(self, owner: Computation) -> Iterator[TrackingFrame]:
        """Record every source read inside the block into a fresh frame."""
        frame = TrackingFrame(owner)
        self._frames.append(frame)
        try:
            yield frame
        finally:
            self._frames.pop()

    def untrack(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` without registering any of its reads as dependencies."""
        self._frames.append(TrackingFrame(None, recording=False))
        try:
            return fn()
        finally:
            self._frames.pop()

    # ─── Ownership ───────────────────────────────────────────────────────

    @property
    def owner(self) -> Scope:
        """The scope new resources are registered with."""
        return self._owners[-1]

    @contextmanager
    def owned_by(self, scope: Scope) -> Iterator[Scope]:
        self._owners.append(scope)
        try:
            yield scope
        finally:
            self._owners.pop()

    @contextmanager
    def scope(self, owner: Scope) -> Iterator[Scope]:
        """Activate this runtime and make ``owner`` the active owner.

        Code run inside (component hooks, effect bodies) reaches this runtime
        through ``get_runtime()`` as well, so what it creates lands in ``owner``.
        """
        self.activate()
        try:
            with self.owned_by(owner):
                yield owner
        finally:
            self.deactivate()

    def own(self, disposer: Disposer) -> Scope:
        """Register ``disposer`` with the active owner and return that owner."""
        owner = self.owner
        owner.add(disposer)
        return owner

    # ─── Thread marshalling ──────────────────────────────────────────────

    def set_scheduler(self, scheduler: Callable[[Callable[[], None]], Any] | None) -> None:
        """Marshal writes from other threads through ``scheduler``.

        Call once from the UI thread, e.g. ``runtime.set_scheduler(app.call_from_thread)``.
        Pass ``None`` to stop marshalling.
        """
        self._scheduler = scheduler
        self._scheduler_thread = threading.current_thread() if scheduler else None

    def marshal(self, fn: Callable[[], None]) -> bool:
        """Hand ``fn`` to the scheduler if called off the scheduler thread."""
        if self._scheduler is not None and threading.current_thread() is not self._scheduler_thread:
            self._scheduler(fn)
            return True
        return False

    # ─── Error isolation ─────────────────────────────────────────────────

    def report_error(self, exc: BaseException, node: Any = None) -> None:
        """Report a failure isolated at ``node`` without interrupting the pass."""
        if self._error_handler is None:
            logger.error("Error in %r", node, exc_info=exc)
            return
        try:
            self._error_handler(exc, node)
        except Exception:
            logger.exception("Error handler failed while reporting %r from %r", exc, node)

    # ─── Batching ────────────────────────────────────────────────────────

    @property
    def batching(self) -> bool:
        return self._batch_depth > 0

    @property
    def propagating(self) -> bool:
        return self._propagating

    def begin_batch(self) -> None:
        """Enter a batching scope. Nested batches coalesce into the outermost."""
        self._batch_depth += 1

    def end_batch(self) -> None:
        """Exit a batching scope. The outermost exit runs one propagation pass."""
        self._batch_depth -= 1
        if self._batch_depth == 0 and not self._propagating:
            self.flush()

    def write(self, signal: Source, value: Any) -> None:
        """Store ``value`` in ``signal`` and propagate, or defer to the batch."""
        if signal not in self._dirty:
            self._dirty[signal] = signal._value
        signal._value = value
        if self._batch_depth == 0 and not self._propagating:
            self.flush()

    def defer(self, effect: Any) -> None:
        """Hold an effect's first run until every pending write has propagated."""
        self._deferred.append(effect)

    def flush(self) -> None:
        """Propagate pending writes, including writes made by effects while flushing.

        Deferred first runs happen one at a time, each only once no write is
        pending, so a new effect never sees a signal ahead of its derived values.
        """
        if self._propagating:
            return
        self._propagating = True
        passes = 0
        try:
            while self._dirty or self._deferred:
                if not self._dirty:
                    self._deferred.pop(0)._run()
                    continue
                passes += 1
                if passes > self.max_passes:
                    raise ReactiveCycleError(
                        f"writes did not settle after {self.max_passes} propagation passes"
                    )
                dirty, self._dirty = self._dirty, {}
                self._propagate(dirty)
        except BaseException:
            self._dirty.clear()
            self._deferred.clear()
            raise
        finally:
            self._propagating = False

    # ─── Propagation ─────────────────────────────────────────────────────

    def _propagate(self, dirty: dict[Any, Any]) -> None:
        changed: dict[Node, None] = {
            signal: None
            for signal, previous in dirty.items()
            if not signal._equal(previous, signal._value)
        }
        if not changed:
            return

        deriveds, effects = self._closure(changed)
        order = topological_order(deriveds)
        logger.debug(
            "Propagating %d change(s) to %d derived, %d effect(s)",
            len(changed), len(order), len(effects),
        )

        self._pass = _Pass(set(order), changed)
        try:
            for node in order:
                self.settle(node)
        finally:
            self._pass = None

        for node in list(changed):
            node._notify()

        for effect in effects:
            if effect._depends_on_any(changed):
                effect._run()

    def _closure(self, roots: dict[Node, None]) -> tuple[list, list]:
        """Derived values and effects reachable from ``roots``, each in creation order."""
        deriveds: list = []
        effects: list = []
        seen = set(roots)
        stack = list(roots)
        while stack:
            node = stack.pop()
            for observer in list(node._observers):
                if observer in seen:
                    continue
                seen.add(observer)
                if isinstance(observer, Source):
                    deriveds.append(observer)
                    stack.append(observer)
                else:
                    effects.append(observer)
        deriveds.sort(key=_creation_order)
        effects.sort(key=_creation_order)
        return deriveds, effects

    def settle(self, node: Any) -> None:
        """Bring a derived value up to date for the running pass.

        No-op outside a pass or once ``node`` has settled. Sources settle
        first, so a derived read for the first time mid-pass (a new dynamic
        edge) still observes fully propagated values.
        """
        current = self._pass
        if current is None or node not in current.stale:
            return
        if node in current.settling:
            raise ReactiveCycleError(f"dependency cycle through {node._label()}")
        current.settling.add(node)
        try:
            for source in list(node._sources):
                self.settle(source)
            if node._depends_on_any(current.changed) and node._recompute():
                current.changed[node] = None
        finally:
            current.settling.discard(node)
            current.stale.discard(node)

    def __repr__(self) -> str:
        return f"Runtime({self.name!r}, batch_depth={self._batch_depth})"


def _creation_order(node: Node) -> int:
    return node._id


_active_runtime: contextvars.ContextVar[Runtime | None] = contextvars.ContextVar(
    "tuirunes_runtime", default=None
)

_default_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    """The active runtime, or the process-wide default if none is active."""
    runtime = _active_runtime.get()
    if runtime is not None:
        return runtime
    global _default_runtime
    if _default_runtime is None:
        _default_runtime = Runtime(name="default")
    return _default_runtime


def set_scheduler(scheduler: Callable[[Callable[[], None]], Any] | None) -> None:
    """Set the thread scheduler of the active runtime.

    Call once from the main/UI thread:
        tuirunes.set_scheduler(app.call_from_thread)
    """
    get_runtime().set_scheduler(scheduler)


def untrack(fn: Callable[[], T]) -> T:
    """Run ``fn`` on the active runtime without tracking its reads."""
    return get_runtime().untrack(fn)
