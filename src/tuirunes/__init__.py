"""tuirunes: reactive state and component lifecycle for terminal UIs."""

from importlib.metadata import version as _version

__version__ = _version("tuirunes")

from tuirunes.errors import (
    LifecycleError,
    ReactiveCycleError,
    StateAccessError,
    TeardownError,
    TuiRunesError,
)
from tuirunes.runtime import Runtime, get_runtime, set_scheduler, untrack
from tuirunes.scope import Scope
from tuirunes.signal import Bindable, Signal, create_bindable, create_signal
from tuirunes.derived import Derived, combine_latest, create_derived, create_selector, derived
from tuirunes.effect import (
    Effect,
    create_conditional_effect,
    create_effect,
    effect,
    effect_of,
    on_cleanup,
)
from tuirunes.batch import action, batch, transaction
from tuirunes.store import Store
from tuirunes.component import Component, ReactiveComponent
from tuirunes.lifecycle import (
    ComponentInstance,
    ComponentMetrics,
    LifecycleManager,
    LifecyclePhase,
    is_valid_transition,
)
# textual bridge is opt-in: import tuirunes.textual explicitly

__all__ = [
    "Runtime",
    "get_runtime",
    "set_scheduler",
    "untrack",
    "Scope",
    "Signal",
    "Bindable",
    "create_signal",
    "create_bindable",
    "Derived",
    "create_derived",
    "derived",
    "create_selector",
    "combine_latest",
    "Effect",
    "create_effect",
    "effect",
    "effect_of",
    "create_conditional_effect",
    "on_cleanup",
    "batch",
    "transaction",
    "action",
    "Store",
    "Component",
    "ReactiveComponent",
    "LifecycleManager",
    "LifecyclePhase",
    "ComponentInstance",
    "ComponentMetrics",
    "is_valid_transition",
    "TuiRunesError",
    "LifecycleError",
    "ReactiveCycleError",
    "StateAccessError",
    "TeardownError",
]
