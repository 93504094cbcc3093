"""
Engine events.

Every engine notification is a dataclass; listeners subscribe by class and
run ordered by priority. A listener may cancel the event: lower-priority
listeners are then skipped and, for ``CancellableEvent`` subclasses, the
engine skips the default behaviour (a jump, a save, a load). ``MONITOR``
listeners run last and always see the final outcome.

Listener exceptions are logged and swallowed so a broken subscriber never
stops a statement chain.
"""
from __future__ import annotations

import itertools
import logging
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    LOWEST = 0
    LOW = 25
    NORMAL = 50
    HIGH = 75
    HIGHEST = 100
    MONITOR = 200


@dataclass
class Event:
    cancelled: bool = field(default=False, init=False, repr=False, compare=False)
    created: float = field(default_factory=time.monotonic, init=False, repr=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class CancellableEvent(Event):
    """Cancelling vetoes what the engine was about to do."""


# ============================================================================
# Statement Events
# ============================================================================

@dataclass
class StatementAppliedEvent(Event):
    """A statement finished its forward lifecycle."""
    label: str = ""
    step: int = 0
    statement: Any = None
    handler: str = ""
    proceed: bool = True


@dataclass
class StatementRevertedEvent(Event):
    """A statement finished its backward lifecycle; label/step is the cursor afterwards."""
    label: str = ""
    step: int = 0
    statement: Any = None
    handler: str = ""
    proceed: bool = True


@dataclass
class ChainHaltedEvent(Event):
    """A forward or backward chain stopped on a rejection."""
    direction: str = "run"  # "run" or "revert"
    label: str = ""
    step: int = 0
    reason: str = ""


@dataclass
class ErrorReportedEvent(Event):
    """An unresolved target was reported to the error surface."""
    title: str = ""
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Game Events
# ============================================================================

@dataclass
class GameStartEvent(Event):
    """Fired when a game starts (new game or load)."""
    from_load: bool = False
    slot: Optional[str] = None


@dataclass
class GameResetEvent(Event):
    """Fired after storage, state, history and globals were reset."""
    pass


@dataclass
class JumpToLabelEvent(CancellableEvent):
    """Fired before jumping to a label."""
    target_label: str = ""
    from_label: str = ""


@dataclass
class ChoiceSelectEvent(CancellableEvent):
    """Fired when the player selects a choice."""
    key: str = ""
    text: str = ""


@dataclass
class AutoModeEvent(Event):
    """Fired when auto mode is toggled."""
    enabled: bool = False


# ============================================================================
# Save/Load Events
# ============================================================================

@dataclass
class SaveEvent(CancellableEvent):
    """Fired before saving."""
    slot: str = ""
    name: str = ""


@dataclass
class SaveCompleteEvent(Event):
    """Fired after a save was written."""
    slot: str = ""
    success: bool = True


@dataclass
class LoadEvent(CancellableEvent):
    """Fired before loading."""
    slot: str = ""


@dataclass
class LoadCompleteEvent(Event):
    """Fired after a slot was restored and resumed."""
    slot: str = ""
    success: bool = True


# ============================================================================
# Bus
# ============================================================================

E = TypeVar("E", bound=Event)
Callback = Callable[[Any], None]


@dataclass
class _Subscription:
    callback: Callback
    priority: Priority
    once: bool
    seq: int

    def sort_key(self):
        # monitors after everything else; ties keep subscription order
        return (self.priority == Priority.MONITOR, -int(self.priority), self.seq)


class EventSystem:
    """Per-engine event bus.

        unsubscribe = engine.events.subscribe(JumpToLabelEvent, veto, priority=Priority.HIGH)

        @engine.events.on(StatementAppliedEvent)
        def trace(event):
            ...
    """

    def __init__(self) -> None:
        self._subs: Dict[Type[Event], List[_Subscription]] = defaultdict(list)
        self._seq = itertools.count()
        self._emitted: Counter = Counter()

    def subscribe(self, event_type: Type[E], callback: Callable[[E], None],
                  priority: Priority = Priority.NORMAL, once: bool = False) -> Callable[[], bool]:
        """Register ``callback`` for ``event_type``; returns a function that removes it."""
        subs = self._subs[event_type]
        subs.append(_Subscription(callback, Priority(priority), once, next(self._seq)))
        subs.sort(key=_Subscription.sort_key)
        return lambda: self.unsubscribe(event_type, callback)

    def unsubscribe(self, event_type: Type[E], callback: Callable[[E], None]) -> bool:
        subs = self._subs.get(event_type)
        if not subs:
            return False
        for sub in subs:
            if sub.callback == callback:
                subs.remove(sub)
                return True
        return False

    def on(self, event_type: Type[E], priority: Priority = Priority.NORMAL):
        """Decorator form of ``subscribe``."""
        def deco(fn: Callable[[E], None]) -> Callable[[E], None]:
            self.subscribe(event_type, fn, priority=priority)
            return fn
        return deco

    def once(self, event_type: Type[E], callback: Callable[[E], None],
             priority: Priority = Priority.NORMAL) -> Callable[[], bool]:
        return self.subscribe(event_type, callback, priority=priority, once=True)

    def emit(self, event: E) -> E:
        """Deliver ``event`` and hand it back so callers can check ``cancelled``."""
        kind = type(event)
        self._emitted[kind.__name__] += 1
        for sub in list(self._subs.get(kind, ())):
            if event.cancelled and sub.priority != Priority.MONITOR:
                continue
            if sub.once:
                self._discard(kind, sub)
            try:
                sub.callback(event)
            except Exception as e:
                logger.error(f"Listener {getattr(sub.callback, '__name__', sub.callback)!s} failed on {kind.__name__}: {e}",
                             exc_info=True)
        return event

    def _discard(self, kind: Type[Event], sub: _Subscription) -> None:
        subs = self._subs.get(kind)
        if subs and sub in subs:
            subs.remove(sub)

    def clear(self, event_type: Optional[Type[Event]] = None) -> None:
        if event_type is None:
            self._subs.clear()
        else:
            self._subs.pop(event_type, None)

    def listener_count(self, event_type: Optional[Type[Event]] = None) -> int:
        if event_type is not None:
            return len(self._subs.get(event_type, ()))
        return sum(len(subs) for subs in self._subs.values())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_emits": sum(self._emitted.values()),
            "emit_counts": dict(self._emitted),
            "listener_counts": {k.__name__: len(v) for k, v in self._subs.items() if v},
        }
