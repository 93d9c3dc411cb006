"""Dependency tracking engine — the heart of tuirunes.

Every derived value and effect runs inside a tracking frame. Any signal or
derived read while a frame is on top of the runtime's frame stack registers
itself into that frame. When the run finishes, the frame is diffed against the
computation's previous sources: dropped sources stop notifying it, new ones
start. Dependencies are therefore dynamic: a signal read only inside one
branch of an ``if`` is a dependency only while that branch is taken.

The graph is also ordered here: ``topological_order`` sorts the derived nodes
touched by a propagation pass so each one recomputes after its sources.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any, Callable, Iterable

from tuirunes.errors import ReactiveCycleError

if TYPE_CHECKING:
    from tuirunes.runtime import Runtime

# ID generation — itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def default_equal(old: Any, new: Any) -> bool:
    """Identity first, then ``==``."""
    return old is new or old == new


class Node:
    """Common identity for every participant in the graph."""

    def __init__(self, runtime: Runtime, name: str | None = None) -> None:
        self._id = new_id()
        self._runtime = runtime
        self.name = name

    def _label(self) -> str:
        return self.name or f"#{self._id}"


class Source(Node):
    """Something a computation can read: a signal or a derived value.

    ``_observers`` holds the computations currently depending on it (the
    graph edges). ``_subscribers`` holds plain callbacks registered with
    ``subscribe``, keyed by handle id in registration order.
    """

    _value: Any

    def __init__(self, runtime: Runtime, name: str | None = None) -> None:
        super().__init__(runtime, name)
        self._observers: dict[Computation, None] = {}
        self._subscribers: dict[int, Callable[[Any], None]] = {}

    def peek(self) -> Any:
        """Current value, without registering a dependency."""
        return self._value

    def _track(self) -> None:
        frame = self._runtime.current_frame
        if frame is not None:
            frame.add(self)

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Call ``callback(value)`` now and after every distinct change.

        Returns an idempotent unsubscribe. Inside an owner scope (a mounting
        component, an effect run) the unsubscribe is also registered with
        that scope, so teardown removes the subscription.
        """
        # Initial delivery is untracked: it is not a read by the enclosing computation.
        self._runtime.untrack(lambda: callback(self.peek()))
        handle = new_id()
        owner = self._runtime.owner

        def unsubscribe() -> None:
            if self._subscribers.pop(handle, None) is not None:
                owner.discard(unsubscribe)

        owner.add(unsubscribe)
        self._subscribers[handle] = callback
        return unsubscribe

    def _notify(self) -> None:
        """Deliver the current value to a snapshot of the subscribers."""
        value = self._value
        for handle, callback in list(self._subscribers.items()):
            # Removed by an earlier callback in this same loop.
            if handle not in self._subscribers:
                continue
            try:
                callback(value)
            except Exception as exc:
                self._runtime.report_error(exc, self)


class Computation(Node):
    """Something that reads sources: a derived value or an effect."""

    def __init__(self, runtime: Runtime, name: str | None = None) -> None:
        super().__init__(runtime, name)
        self._sources: dict[Source, None] = {}

    def _depends_on_any(self, changed: dict[Any, None]) -> bool:
        return any(source in changed for source in self._sources)


class TrackingFrame:
    """Sources read during one run of ``owner``.

    A non-recording frame (``untrack``) swallows reads.
    """

    __slots__ = ("owner", "sources", "recording")

    def __init__(self, owner: Computation | None, recording: bool = True) -> None:
        self.owner = owner
        self.sources: dict[Source, None] = {}
        self.recording = recording

    def add(self, source: Source) -> None:
        if self.recording:
            self.sources[source] = None


def rebind(node: Computation, sources: dict[Source, None]) -> None:
    """Replace ``node``'s sources, unsubscribing dropped ones and subscribing new ones."""
    previous = node._sources
    for source in previous:
        if source not in sources:
            source._observers.pop(node, None)
    for source in sources:
        if source not in previous:
            source._observers[node] = None
    node._sources = sources


def detach(node: Computation) -> None:
    """Disconnect ``node`` from all of its sources."""
    for source in node._sources:
        source._observers.pop(node, None)
    node._sources = {}


_VISITING = 1
_DONE = 2


def topological_order(nodes: Iterable[Computation]) -> list[Computation]:
    """Order ``nodes`` so every node comes after the nodes it reads.

    Only edges between members of ``nodes`` count. Iterative depth-first
    search; a back edge means a dependency cycle and raises
    ``ReactiveCycleError`` naming the cycle.
    """
    members = list(nodes)
    member_set = set(members)
    marks: dict[Computation, int] = {}
    order: list[Computation] = []

    for root in members:
        if root in marks:
            continue
        marks[root] = _VISITING
        stack = [(root, iter(list(root._sources)))]
        while stack:
            node, pending = stack[-1]
            for dep in pending:
                if dep not in member_set:
                    continue
                mark = marks.get(dep)
                if mark == _VISITING:
                    path = [n for n, _ in stack]
                    cycle = path[path.index(dep):] + [dep]
                    raise ReactiveCycleError(
                        "dependency cycle: " + " -> ".join(n._label() for n in cycle)
                    )
                if mark is None:
                    marks[dep] = _VISITING
                    stack.append((dep, iter(list(dep._sources))))
                    break
            else:
                stack.pop()
                marks[node] = _DONE
                order.append(node)
    return order
