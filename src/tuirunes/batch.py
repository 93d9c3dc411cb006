"""Batches — grouped writes with a single propagation pass.

Writes inside batch(), an @action or ``with transaction()`` are recorded in
the runtime's batch frame and propagated once, when the outermost scope
exits. Derived values and effects see every write of the group at once,
never one of them without the others.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from tuirunes.runtime import Runtime, get_runtime

P = ParamSpec("P")
R = TypeVar("R")


def batch(fn: Callable[[], R], *, runtime: Runtime | None = None) -> R:
    """Run fn with propagation deferred until it returns.

    Nested calls coalesce into the outermost batch.

    Usage:
        a = create_signal(1)
        b = create_signal(2)
        total = create_derived(lambda: a.read() + b.read())

        batch(lambda: (a.set(10), b.set(20)))
        # total recomputed once, straight to 30
    """
    rt = runtime or get_runtime()
    rt.begin_batch()
    try:
        return fn()
    finally:
        rt.end_batch()


@contextmanager
def transaction(runtime: Runtime | None = None) -> Iterator[None]:
    """Context manager for batching writes.

    Usage:
        with transaction():
            first.set("Ada")
            last.set("Lovelace")
            # effects run here, after both are set
    """
    rt = runtime or get_runtime()
    rt.begin_batch()
    try:
        yield
    finally:
        rt.end_batch()


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch every write made inside fn.

    Usage:
        @action
        def swap():
            x, y = left.peek(), right.peek()
            left.set(y)
            right.set(x)
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with transaction():
            return fn(*args, **kwargs)

    return wrapper
