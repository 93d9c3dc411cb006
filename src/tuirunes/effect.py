"""Effects — side effects re-run when their tracked dependencies change.

An effect runs immediately on creation (or, when created inside a batch or a
propagation pass, as soon as pending writes have propagated) and re-runs once
per propagation pass in which one of its sources changed, after every derived
value has settled.

The body may return a cleanup callable. The effect holds it until the next
run or disposal and calls it exactly once, before the body runs again or when
the effect is disposed. Cleanup is the only cancellation hook (clearing a
timer, closing a handle). Anything created during a run (nested effects,
derived values, subscriptions, on_cleanup callbacks) is owned by that run and
released before the next one.

A body that raises is reported through the runtime's error handler; other
effects in the same pass still run.
"""

from __future__ import annotations

from typing import Callable, Union

from tuirunes._tracking import Computation, Source, detach, rebind
from tuirunes.errors import ReactiveCycleError, TeardownError
from tuirunes.runtime import Runtime, get_runtime
from tuirunes.scope import Scope

Cleanup = Callable[[], object]
EffectFn = Callable[[], Union[Cleanup, None]]


class Effect(Computation):
    """A reactive side effect with an owned cleanup handle."""

    def __init__(
        self,
        fn: EffectFn,
        *,
        name: str | None = None,
        runtime: Runtime | None = None,
    ) -> None:
        super().__init__(runtime or get_runtime(), name or getattr(fn, "__name__", None))
        self._fn = fn
        self._cleanup: Cleanup | None = None
        self._scope = Scope(f"effect:{self._label()}")
        self._disposed = False
        self.runs = 0
        self._owner = self._runtime.own(self.dispose)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _start(self) -> None:
        """First run: now, or after the enclosing batch or pass has settled."""
        runtime = self._runtime
        if runtime.batching or runtime.propagating:
            runtime.defer(self)
        else:
            self._run()

    def _run(self) -> None:
        """Release the previous run, then re-run the body, re-tracking dependencies."""
        if self._disposed:
            return
        for exc in self._release():
            self._runtime.report_error(exc, self)

        runtime = self._runtime
        result = None
        with runtime.tracking(self) as frame, runtime.scope(self._scope):
            try:
                result = self._fn()
            except ReactiveCycleError:
                raise
            except Exception as exc:
                runtime.report_error(exc, self)
        self.runs += 1

        if self._disposed:
            # Disposed itself mid-run: release what this run produced right away.
            self._cleanup = result if callable(result) else None
            for exc in self._release():
                runtime.report_error(exc, self)
            return
        rebind(self, frame.sources)
        self._cleanup = result if callable(result) else None

    def _release(self) -> list[BaseException]:
        """Call the held cleanup and dispose what the last run created."""
        errors: list[BaseException] = []
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            try:
                cleanup()
            except Exception as exc:
                errors.append(exc)
        try:
            self._scope.clear()
        except TeardownError as exc:
            errors.extend(exc.errors)
        return errors

    def dispose(self) -> None:
        """Stop this effect and run its last cleanup. Idempotent.

        Raises TeardownError if the cleanup (or anything the last run created)
        failed to dispose; the effect is stopped regardless.
        """
        if self._disposed:
            return
        self._disposed = True
        detach(self)
        self._owner.discard(self.dispose)
        errors = self._release()
        self._scope.dispose()
        if errors:
            raise TeardownError(self._label(), None, errors, operation="dispose")

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Effect({self._label()}, {state}, runs={self.runs})"


def create_effect(
    fn: EffectFn,
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Callable[[], None]:
    """Run fn now, then again whenever anything it read changes.

    Returns the disposer.

    Usage:
        counter = create_signal(0)
        log = []

        dispose = create_effect(lambda: log.append(counter.read()))
        # log == [0] — ran immediately

        counter.set(1)
        # log == [0, 1]

        dispose()
        counter.set(2)
        # log == [0, 1] — stopped
    """
    return effect_of(fn, name=name, runtime=runtime).dispose


def effect_of(
    fn: EffectFn,
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Effect:
    """Like create_effect, but returns the Effect itself.

    Inside a batch, or while a propagation pass runs, the first run waits
    until pending writes have propagated.
    """
    eff = Effect(fn, name=name, runtime=runtime)
    eff._start()  # Initial run to establish deps
    return eff


def effect(fn: EffectFn) -> Effect:
    """Decorator form of effect_of.

    Usage:
        @effect
        def show_total():
            print(total.read())

        show_total.runs      # 1
        show_total.dispose()
    """
    return effect_of(fn)


def on_cleanup(fn: Cleanup) -> Cleanup:
    """Register ``fn`` with the active owner.

    Inside an effect body it runs before the next run; inside a component
    hook it runs when the component unmounts.
    """
    get_runtime().own(fn)
    return fn


def create_conditional_effect(
    condition: Source,
    fn: EffectFn,
    *,
    name: str | None = None,
    runtime: Runtime | None = None,
) -> Callable[[], None]:
    """Run ``fn`` as an effect only while ``condition`` reads truthy.

    When the condition turns falsy the last run's cleanup is called and
    ``fn``'s dependencies are dropped until it turns truthy again.
    Returns the disposer.
    """

    def gated() -> Cleanup | None:
        if condition.read():
            return fn()
        return None

    return effect_of(gated, name=name or getattr(fn, "__name__", None), runtime=runtime).dispose
