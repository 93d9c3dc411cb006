"""Error taxonomy for the reactive graph and the component lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tuirunes.lifecycle import LifecyclePhase


class TuiRunesError(Exception):
    """Base class for every error raised by tuirunes."""


class ReactiveCycleError(TuiRunesError):
    """A derived value depends on itself, or effects keep re-triggering each other."""


class StateAccessError(TuiRunesError):
    """State was read or mutated on an instance that is not mounted."""


class LifecycleError(TuiRunesError):
    """A lifecycle operation was attempted from a disallowed phase, or a hook failed.

    ``phase`` is the phase the instance was in when the operation failed.
    ``instance_id`` is ``None`` when the component was never mounted.
    """

    def __init__(
        self,
        instance_id: str | None,
        phase: LifecyclePhase | None,
        operation: str,
        cause: BaseException | None = None,
    ) -> None:
        self.instance_id = instance_id
        self.phase = phase
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed for {instance_id or '<untracked>'}"
        if phase is not None:
            message = f"{message} in phase {phase.value}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class TeardownError(LifecycleError):
    """One or more cleanups raised during teardown. Every cleanup still ran."""

    def __init__(
        self,
        instance_id: str | None,
        phase: LifecyclePhase | None,
        errors: list[BaseException],
        operation: str = "teardown",
    ) -> None:
        self.errors = list(errors)
        super().__init__(
            instance_id,
            phase,
            operation,
            self.errors[0] if self.errors else None,
        )

    def __str__(self) -> str:
        return f"{super().__str__()} ({len(self.errors)} cleanup(s) failed)"
