"""Scopes — ordered teardown lists for everything a component or effect owns.

Signals subscribed, derived values and effects created while a scope is the
runtime's active owner register their disposer here. Disposal is best-effort:
every disposer runs exactly once, in reverse registration order, and the
failures are collected and raised together afterwards.
"""

from __future__ import annotations

from typing import Callable

from tuirunes.errors import StateAccessError, TeardownError

Disposer = Callable[[], object]


class Scope:
    """An owner of disposers."""

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        # dict as an ordered set so discard() is O(1)
        self._disposers: dict[Disposer, None] = {}
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __len__(self) -> int:
        return len(self._disposers)

    def add(self, disposer: Disposer) -> Disposer:
        """Register ``disposer``. Returns it, so it can be used inline."""
        if self._disposed:
            raise StateAccessError(f"scope {self.name!r} is already disposed")
        self._disposers[disposer] = None
        return disposer

    def discard(self, disposer: Disposer) -> None:
        """Forget ``disposer`` without running it (it was released early)."""
        self._disposers.pop(disposer, None)

    def clear(self) -> None:
        """Run and forget every disposer; the scope stays usable.

        Raises ``TeardownError`` carrying every failure once all have run.
        """
        disposers = list(self._disposers)
        self._disposers.clear()
        errors: list[BaseException] = []
        for disposer in reversed(disposers):
            try:
                disposer()
            except TeardownError as exc:
                errors.extend(exc.errors)
            except Exception as exc:
                errors.append(exc)
        if errors:
            raise TeardownError(self.name, None, errors)

    def dispose(self) -> None:
        """Run every disposer once and close the scope. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self.clear()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"{len(self._disposers)} disposers"
        return f"Scope({self.name!r}, {state})"
