"""Event bus used to observe the expander without coupling to its internals.

The runtime, the CLI and the tests subscribe here to learn when surfaces are
tracked or released, when an expansion is applied and when a configuration
refresh lands.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the bus."""

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Surface lifecycle
# =============================================================================


@dataclass(slots=True)
class SurfaceTracked(Event):
    """Emitted when the registry attaches listeners to a new surface.

    Attributes:
        kind: ``"flat"`` or ``"structured"``.
        tag_name: Tag of the underlying element.
        hostname: Hostname of the document owning the element.
    """

    kind: str
    tag_name: str
    hostname: str


@dataclass(slots=True)
class SurfaceReleased(Event):
    """Emitted when a surface leaves the document and its listeners are detached."""

    kind: str
    tag_name: str


@dataclass(slots=True)
class ScanCompleted(Event):
    """Emitted after the topology watcher re-synchronised a document."""

    hostname: str
    tracked: int
    added: int


_QUIET_EVENT_TYPES.add(ScanCompleted)


# =============================================================================
# Expansion events
# =============================================================================


@dataclass(slots=True)
class ExpansionApplied(Event):
    """Emitted once a splice has been written and the change signal sent.

    Attributes:
        trigger: The configured key that matched.
        expansion: The unresolved expansion template.
        kind: Surface kind the expansion was written to.
        policy: ``"boundary"`` or ``"trigger-key"``.
        text: Final text of the rewritten scope.
        caret: Caret offset within that scope.
    """

    trigger: str
    expansion: str
    kind: str
    policy: str
    text: str
    caret: int


@dataclass(slots=True)
class ExpansionDeferred(Event):
    """Emitted when a structured surface stages a pending commit."""

    trigger: str
    original_text: str
    rewritten_text: str


@dataclass(slots=True)
class PendingResolved(Event):
    """Emitted when a pending expansion record is cleared.

    Attributes:
        reason: ``"focus"``, ``"blur"``, ``"blur-reapplied"`` or ``"send"``.
    """

    reason: str


# =============================================================================
# Configuration events
# =============================================================================


@dataclass(slots=True)
class ConfigReloaded(Event):
    """Emitted when a new configuration snapshot becomes current."""

    abbreviation_count: int
    enabled: bool
    case_sensitive: bool


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers are stored as weak references where possible (bound methods)
    so subscribers do not outlive their owners.

    Thread Safety:
        This implementation is NOT thread-safe. All operations should be
        performed from the thread running the host event loop.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register a handler to receive events of the specified type."""
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        Handlers run synchronously in registration order. A handler that
        raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if handlers is None:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_indices: list[int] = []

        for i, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead_indices.append(i)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for i in reversed(dead_indices):
            handlers.pop(i)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of handlers for ``event_type`` (or all types)."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Handler reference: weak for bound methods, strong for plain callables."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "SurfaceTracked",
    "SurfaceReleased",
    "ScanCompleted",
    "ExpansionApplied",
    "ExpansionDeferred",
    "PendingResolved",
    "ConfigReloaded",
]
