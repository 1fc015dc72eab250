# =============================================================================
# Hook Pipeline
# =============================================================================
# Four extension points wrap dispatch:
#   created      - fires once, at registration time (configuration side effects)
#   beforeRender - after a match, before the action; may replace the context
#   afterRender  - after the action; may replace the response
#   fallback     - only when no action matched
# Lists run in ascending priority; equal priorities keep registration order.
# =============================================================================

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Tuple, TypeVar, Union

from cirrus.runtime.errors import HookAborted, RegistryFrozen

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HookEvent(str, Enum):
    """Hook extension points."""
    CREATED = "created"
    BEFORE_RENDER = "beforeRender"
    AFTER_RENDER = "afterRender"
    FALLBACK = "fallback"


STORED_EVENTS = (HookEvent.BEFORE_RENDER, HookEvent.AFTER_RENDER, HookEvent.FALLBACK)


# =============================================================================
# HOOK RESULTS
# =============================================================================

@dataclass(frozen=True)
class Ok(Generic[T]):
    """Hook result carrying the (possibly replaced) context or response."""
    value: T


@dataclass(frozen=True)
class Err:
    """Hook result that aborts the pipeline and routes to the error boundary."""
    error: BaseException


HookResult = Union[Ok, Err, Any]


def unwrap_hook_result(result: HookResult, current: Any, event: HookEvent, hook: "HookEntry") -> Any:
    """
    Resolve what a beforeRender/afterRender callback returned.

    Err and returned exceptions raise HookAborted; Ok and plain values
    replace `current`; None leaves it unchanged.
    """
    if isinstance(result, (Err, BaseException)):
        error = result.error if isinstance(result, Err) else result
        logger.warning(f"{event.value} hook {hook.name} aborted the pipeline: {error}")
        raise HookAborted(error, event=event.value, hook=hook.callback) from error
    if isinstance(result, Ok):
        return result.value
    if result is None:
        return current
    return result


# =============================================================================
# HOOK REGISTRY
# =============================================================================

@dataclass(frozen=True)
class HookEntry:
    """One registered callback."""
    priority: int
    sequence: int
    callback: Callable[..., Any]

    @property
    def name(self) -> str:
        return getattr(self.callback, "__name__", repr(self.callback))


class HookRegistry:
    """
    Priority-ordered hook lists per event type.

    Append-only until freeze(); afterwards the lists are tuples shared
    read-only by every invocation.
    """

    def __init__(self):
        self._hooks: Dict[HookEvent, List[HookEntry]] = {event: [] for event in STORED_EVENTS}
        self._frozen: Dict[HookEvent, Tuple[HookEntry, ...]] = {}
        self._sequence = 0

    @property
    def is_frozen(self) -> bool:
        return bool(self._frozen)

    def add(self, event: Union[HookEvent, str], callback: Callable[..., Any], priority: int = 0) -> HookEntry:
        event = HookEvent(event)
        if event == HookEvent.CREATED:
            raise ValueError("created hooks are fired immediately and are not stored")
        if self.is_frozen:
            raise RegistryFrozen(f"Cannot add {event.value} hook after the first request")

        entry = HookEntry(priority=int(priority), sequence=self._sequence, callback=callback)
        self._sequence += 1
        hooks = self._hooks[event]
        hooks.append(entry)
        hooks.sort(key=lambda h: (h.priority, h.sequence))
        return entry

    def get(self, event: Union[HookEvent, str]) -> Tuple[HookEntry, ...]:
        event = HookEvent(event)
        if self.is_frozen:
            return self._frozen[event]
        return tuple(self._hooks[event])

    def freeze(self) -> None:
        if not self.is_frozen:
            self._frozen = {event: tuple(hooks) for event, hooks in self._hooks.items()}

    def count(self) -> Dict[str, int]:
        return {event.value: len(self.get(event)) for event in STORED_EVENTS}
