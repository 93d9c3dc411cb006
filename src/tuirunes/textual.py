"""Textual integration for tuirunes. Opt-in — requires textual.

A Textual app is the external event/render loop: its handlers write signals,
and guarded effects push the results back into widgets. The guard, the
NoMatches handling and the thread marshalling live here, not at call sites,
and the core stays Textual-agnostic.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from textual.css.query import NoMatches

from tuirunes.effect import Effect
from tuirunes.runtime import Runtime, get_runtime

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app) -> Iterator[None]:
    """Suspend guarded effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def effect(app, fn: Callable[[], object], *, runtime: Runtime | None = None) -> Effect:
    """An effect that safely bridges to Textual widgets.

    ``fn`` runs (and tracks its reads) on every change, as any effect does,
    except while the app is not running or paused. NoMatches from widget
    queries is swallowed. ``fn`` is applied through ``app.call_from_thread``
    when the change was triggered off the app's thread.
    """
    main = threading.get_ident()

    def _safe() -> object:
        try:
            return fn()
        except NoMatches:
            return None

    def _guarded() -> object:
        if not is_safe(app):
            # Keep the previous dependencies so the next safe change still fires.
            for source in list(handle._sources):
                source._track()
            return None
        if threading.get_ident() != main:
            return app.call_from_thread(_safe)
        return _safe()

    handle = Effect(_guarded, name=getattr(fn, "__name__", None), runtime=runtime)
    handle._start()
    return handle


def bind_scheduler(app, runtime: Runtime | None = None) -> None:
    """Marshal signal writes from worker threads onto the app's thread.

    Call once from the app's thread, e.g. in ``App.on_mount``.
    """
    (runtime or get_runtime()).set_scheduler(app.call_from_thread)
