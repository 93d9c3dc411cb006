"""Component lifecycle — a phase state machine per mounted instance.

The manager assigns every mounted component a stable instance id, moves it
through the phases in ``TRANSITIONS`` and nothing else, and runs the
component's hooks with the instance scope as the runtime's active owner, so
every signal, derived value, effect and subscription created by a hook is
torn down when the instance unmounts.

Operations on one instance are not reentrant-safe against each other (except
a nested update during an update): callers serialize mount/update/unmount
for the same component.
"""

from __future__ import annotations

import itertools
import logging
import time
from enum import Enum
from typing import Any, Callable, NamedTuple

from tuirunes.component import Component, ReactiveComponent
from tuirunes.errors import LifecycleError, StateAccessError, TeardownError
from tuirunes.runtime import Runtime, get_runtime
from tuirunes.scope import Scope

logger = logging.getLogger(__name__)

_MISSING: Any = object()


class LifecyclePhase(Enum):
    INITIALIZING = "initializing"
    MOUNTING = "mounting"
    MOUNTED = "mounted"
    UPDATING = "updating"
    UNMOUNTING = "unmounting"
    UNMOUNTED = "unmounted"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is LifecyclePhase.UNMOUNTED

    @property
    def allows_operations(self) -> bool:
        """State may be read, updated and rendered in this phase."""
        return self in (LifecyclePhase.MOUNTED, LifecyclePhase.UPDATING)


TRANSITIONS: dict[LifecyclePhase, frozenset[LifecyclePhase]] = {
    LifecyclePhase.INITIALIZING: frozenset({LifecyclePhase.MOUNTING, LifecyclePhase.ERROR}),
    LifecyclePhase.MOUNTING: frozenset({LifecyclePhase.MOUNTED, LifecyclePhase.ERROR}),
    LifecyclePhase.MOUNTED: frozenset(
        {LifecyclePhase.UPDATING, LifecyclePhase.UNMOUNTING, LifecyclePhase.ERROR}
    ),
    LifecyclePhase.UPDATING: frozenset(
        {LifecyclePhase.MOUNTED, LifecyclePhase.UNMOUNTING, LifecyclePhase.ERROR}
    ),
    LifecyclePhase.UNMOUNTING: frozenset({LifecyclePhase.UNMOUNTED, LifecyclePhase.ERROR}),
    LifecyclePhase.UNMOUNTED: frozenset(),
    LifecyclePhase.ERROR: frozenset({LifecyclePhase.UNMOUNTING, LifecyclePhase.UNMOUNTED}),
}


def is_valid_transition(source: LifecyclePhase, target: LifecyclePhase) -> bool:
    return target in TRANSITIONS[source]


class ComponentInstance:
    """Runtime identity of one mounted component."""

    __slots__ = (
        "id", "component", "scope", "phase", "props", "state", "error",
        "mounted_at", "update_count", "error_count", "finished_hooks",
    )

    def __init__(self, instance_id: str, component: Component, scope: Scope, props: Any) -> None:
        self.id = instance_id
        self.component = component
        self.scope = scope
        self.phase = LifecyclePhase.INITIALIZING
        self.props = props
        self.state: Any = None
        self.error: LifecycleError | None = None
        self.mounted_at = time.monotonic()
        self.update_count = 0
        self.error_count = 0
        # Unmount hooks that already completed; a retried unmount skips them.
        self.finished_hooks: set[str] = set()

    def __repr__(self) -> str:
        return f"ComponentInstance({self.id}, {type(self.component).__name__}, {self.phase.value})"


class ComponentMetrics(NamedTuple):
    instance_id: str
    phase: LifecyclePhase
    lifetime: float
    update_count: int
    error_count: int


def sequential_ids(prefix: str = "component") -> Callable[[], str]:
    """Id factory yielding ``component-1``, ``component-2``, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


class LifecycleManager:
    """Mounts, updates and unmounts components through the phase table."""

    def __init__(
        self,
        runtime: Runtime | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._runtime = runtime or get_runtime()
        self._new_id = id_factory or sequential_ids()
        self._instances: dict[str, ComponentInstance] = {}
        # id(component) -> instance id; the instance holds the component alive.
        self._by_component: dict[int, str] = {}

    # ─── Lookup ──────────────────────────────────────────────────────────

    def instance_of(self, component: Component) -> ComponentInstance | None:
        instance_id = self._by_component.get(id(component))
        return self._instances.get(instance_id) if instance_id is not None else None

    def phase_of(self, component: Component) -> LifecyclePhase | None:
        instance = self.instance_of(component)
        return instance.phase if instance is not None else None

    def get_phase(self, instance_id: str) -> LifecyclePhase | None:
        instance = self._instances.get(instance_id)
        return instance.phase if instance is not None else None

    def has_instance(self, instance_id: str) -> bool:
        return instance_id in self._instances

    def instances(self) -> list[ComponentInstance]:
        return list(self._instances.values())

    def metrics(self, component: Component) -> ComponentMetrics | None:
        instance = self.instance_of(component)
        if instance is None:
            return None
        return ComponentMetrics(
            instance.id,
            instance.phase,
            time.monotonic() - instance.mounted_at,
            instance.update_count,
            instance.error_count,
        )

    # ─── State access ────────────────────────────────────────────────────

    def _live(self, component: Component, operation: str) -> ComponentInstance:
        instance = self.instance_of(component)
        if instance is None or not instance.phase.allows_operations:
            phase = instance.phase.value if instance is not None else "untracked"
            raise StateAccessError(f"cannot {operation} {type(component).__name__} in phase {phase}")
        return instance

    def state_of(self, component: Component) -> Any:
        return self._live(component, "read state of").state

    def set_state(self, component: Component, state: Any) -> None:
        self._live(component, "set state of").state = state

    def render(self, component: Component) -> Any:
        """Render with the instance scope active; a failure moves it to ERROR."""
        instance = self._live(component, "render")
        try:
            with self._runtime.scope(instance.scope):
                return component.render(instance.props, instance.state)
        except Exception as exc:
            raise self._fail(instance, instance.phase, "render", exc) from exc

    # ─── Transitions ─────────────────────────────────────────────────────

    def _transition(self, instance: ComponentInstance, target: LifecyclePhase, operation: str) -> None:
        if not is_valid_transition(instance.phase, target):
            raise LifecycleError(instance.id, instance.phase, operation)
        instance.phase = target

    def _fail(
        self,
        instance: ComponentInstance,
        phase: LifecyclePhase,
        operation: str,
        cause: BaseException,
    ) -> LifecycleError:
        error = LifecycleError(instance.id, phase, operation, cause)
        if instance.phase is not LifecyclePhase.ERROR:
            self._transition(instance, LifecyclePhase.ERROR, operation)
        instance.error = error
        instance.error_count += 1
        logger.error("%s of %s failed in phase %s", operation, instance.id, phase.value, exc_info=cause)
        return error

    def _scope_for(self, component: Component) -> Scope:
        if isinstance(component, ReactiveComponent):
            return component.scope
        return Scope(type(component).__name__)

    def _forget(self, instance: ComponentInstance) -> None:
        self._instances.pop(instance.id, None)
        self._by_component.pop(id(instance.component), None)

    # ─── Operations ──────────────────────────────────────────────────────

    def mount(self, component: Component, props: Any) -> Any:
        """Initialize and mount ``component``. Returns the initial state."""
        existing = self.instance_of(component)
        if existing is not None:
            raise LifecycleError(existing.id, existing.phase, "mount")
        scope = self._scope_for(component)
        if scope.disposed:
            raise LifecycleError(
                None, None, "mount", StateAccessError(f"{scope.name} was already destroyed")
            )

        instance = ComponentInstance(self._new_id(), component, scope, props)
        self._instances[instance.id] = instance
        self._by_component[id(component)] = instance.id
        logger.debug("Mounting %s as %s", type(component).__name__, instance.id)

        try:
            with self._runtime.scope(scope):
                state = component.init(props)
                instance.state = state
                self._transition(instance, LifecyclePhase.MOUNTING, "mount")
                component.on_mount(props, state)
        except Exception as exc:
            raise self._fail(instance, instance.phase, "mount", exc) from exc

        self._transition(instance, LifecyclePhase.MOUNTED, "mount")
        return state

    def update(self, component: Component, props: Any, state: Any = _MISSING) -> Any:
        """Run ``update`` and ``on_update`` for new props. Returns the new state.

        ``state`` defaults to the instance's current state.
        """
        instance = self.instance_of(component)
        if instance is None:
            raise LifecycleError(None, None, "update")
        if not instance.phase.allows_operations:
            raise LifecycleError(instance.id, instance.phase, "update")

        prev_state = instance.state if state is _MISSING else state
        outermost = instance.phase is LifecyclePhase.MOUNTED
        if outermost:
            self._transition(instance, LifecyclePhase.UPDATING, "update")

        try:
            with self._runtime.scope(instance.scope):
                new_state = component.update(props, prev_state)
                component.on_update(props, new_state, prev_state)
        except LifecycleError as exc:
            if exc.instance_id == instance.id:
                # A nested update of this instance already failed and recorded it.
                raise
            raise self._fail(instance, LifecyclePhase.UPDATING, "update", exc) from exc
        except Exception as exc:
            raise self._fail(instance, LifecyclePhase.UPDATING, "update", exc) from exc

        instance.props = props
        instance.state = new_state
        instance.update_count += 1
        if outermost and instance.phase is LifecyclePhase.UPDATING:
            self._transition(instance, LifecyclePhase.MOUNTED, "update")
        return new_state

    def unmount(self, component: Component, state: Any = _MISSING) -> None:
        """Run ``on_unmount`` and ``cleanup``, then tear down everything the instance owns.

        Teardown always completes. A failing hook leaves the instance in
        ERROR (still tracked) and raises LifecycleError; failing cleanups
        alone end in UNMOUNTED and raise TeardownError listing every failure.
        """
        instance = self.instance_of(component)
        if instance is None:
            raise LifecycleError(None, None, "unmount")
        self._transition(instance, LifecyclePhase.UNMOUNTING, "unmount")
        final_state = instance.state if state is _MISSING else state
        logger.debug("Unmounting %s", instance.id)

        hook_error: BaseException | None = None
        with self._runtime.scope(instance.scope):
            for hook in (component.on_unmount, component.cleanup):
                if hook.__name__ in instance.finished_hooks:
                    continue
                try:
                    hook(final_state)
                    instance.finished_hooks.add(hook.__name__)
                except Exception as exc:
                    if hook_error is None:
                        hook_error = exc
                    else:
                        logger.error("%s of %s also failed", hook.__name__, instance.id, exc_info=exc)

        teardown_errors = self._teardown(instance)

        if hook_error is not None:
            raise self._fail(instance, LifecyclePhase.UNMOUNTING, "unmount", hook_error) from hook_error

        self._transition(instance, LifecyclePhase.UNMOUNTED, "unmount")
        self._forget(instance)
        if teardown_errors:
            error = TeardownError(instance.id, LifecyclePhase.UNMOUNTED, teardown_errors, "unmount")
            instance.error = error
            raise error

    def _teardown(self, instance: ComponentInstance) -> list[BaseException]:
        try:
            instance.scope.dispose()
        except TeardownError as exc:
            for err in exc.errors:
                logger.error("Cleanup leaked while unmounting %s", instance.id, exc_info=err)
            return exc.errors
        return []
