"""Event bus connecting the reconciliation core to its presentation layer.

The driver and the trigger controller publish events here so an editor can
refresh glyphs, busy indicators, and error banners without the core knowing
anything about the editor.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

    from .triggers.scanner import Trigger

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for every event published on the :class:`EventBus`."""


# Published once per chunk; kept out of the debug log.
_QUIET_EVENT_TYPES: set[type] = set()


@dataclass(slots=True)
class TriggersScanned(Event):
    """The trigger list was recomputed from the current document.

    Attributes:
        triggers: Triggers found, valid only for the scanned text.
        version: Content hash of the scanned text.
    """

    triggers: tuple["Trigger", ...]
    version: str = ""


@dataclass(slots=True)
class ReconciliationStarted(Event):
    """A generation session took the single flight slot."""

    session_id: str
    key: tuple[int, int]
    kind: str


@dataclass(slots=True)
class ChunkApplied(Event):
    """A spliced candidate document was pushed to the document owner.

    Attributes:
        session_id: Session that produced the push.
        chunk_count: Chunks received so far.
        push_count: Pushes performed so far, including this one.
        output_chars: Length of the accumulated output.
    """

    session_id: str
    chunk_count: int
    push_count: int
    output_chars: int


_QUIET_EVENT_TYPES.add(ChunkApplied)


@dataclass(slots=True)
class ReconciliationCompleted(Event):
    session_id: str
    key: tuple[int, int]
    chunk_count: int
    push_count: int


@dataclass(slots=True)
class ReconciliationFailed(Event):
    """A session ended with an error; ``message`` is safe to show the user."""

    session_id: str
    key: tuple[int, int]
    message: str
    error_type: str = ""


@dataclass(slots=True)
class ReconciliationRejected(Event):
    """A start request was refused without touching any state."""

    key: tuple[int, int]
    reason: str


@dataclass(slots=True)
class UserEditOverwritten(Event):
    """The live document diverged from the last push and was overwritten."""

    session_id: str
    key: tuple[int, int]
    lost_chars: int = 0


@dataclass(slots=True)
class DocumentLockChanged(Event):
    locked: bool
    session_id: str | None = None


class EventBus(Generic[E]):
    """Synchronous publish/subscribe bus.

    Bound-method handlers are held weakly so a discarded presenter does not
    keep receiving events. Handler exceptions are logged and never reach the
    publisher.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        """Invoke every handler registered for the exact type of ``event``."""

        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[int] = []
        for index, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised for event %s", _handler_name(handler), event_type.__name__
                )
        for index in reversed(dead):
            handlers.pop(index)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "ChunkApplied",
    "DocumentLockChanged",
    "Event",
    "EventBus",
    "Handler",
    "ReconciliationCompleted",
    "ReconciliationFailed",
    "ReconciliationRejected",
    "ReconciliationStarted",
    "TriggersScanned",
    "UserEditOverwritten",
]
