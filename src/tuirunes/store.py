"""Store — key-based Signal container for component or app state.

A Store wraps a schema of named Signals. Multi-key updates and resets run in
one batch, so dependents see the whole change at once.
"""

from __future__ import annotations

from typing import Any, Iterator

from tuirunes.batch import transaction
from tuirunes.runtime import Runtime, get_runtime
from tuirunes.signal import Signal


class Store:
    """Key-based Signal container."""

    def __init__(
        self,
        schema: dict[str, Any],
        initial: dict | None = None,
        *,
        runtime: Runtime | None = None,
    ) -> None:
        self._runtime = runtime or get_runtime()
        self._defaults = dict(schema)
        self._signals: dict[str, Signal] = {}
        for key, default in schema.items():
            value = initial.get(key, default) if initial else default
            self._signals[key] = Signal(value, name=key, runtime=self._runtime)

    def __contains__(self, key: str) -> bool:
        return key in self._signals

    def __iter__(self) -> Iterator[str]:
        return iter(self._signals)

    def signal(self, key: str) -> Signal | None:
        return self._signals.get(key)

    def get(self, key: str) -> Any:
        sig = self._signals.get(key)
        return sig.read() if sig is not None else None

    def set(self, key: str, value: Any) -> None:
        sig = self._signals.get(key)
        if sig is not None:
            sig.set(value)

    def update(self, values: dict) -> None:
        with transaction(self._runtime):
            for key, value in values.items():
                self.set(key, value)

    def reset(self) -> None:
        """Restore every key to its schema default."""
        self.update(self._defaults)

    def snapshot(self) -> dict[str, Any]:
        """Current values of all keys. Tracked like individual reads."""
        return {key: sig.read() for key, sig in self._signals.items()}

    def __repr__(self) -> str:
        values = {key: sig.peek() for key, sig in self._signals.items()}
        return f"Store({values!r})"
