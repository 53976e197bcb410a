"""Surface adapters: one capability set over flat and structured editables.

The variant is chosen once, when the registry first tracks an element, and
recorded on the :class:`SurfaceHandle`. Adapters are stateless; every call
receives the element it operates on so handles never keep an element alive.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..errors import SurfaceWriteError
from ..host.dom import DomEvent, Element, Text, TextControl
from .scheduling import Debouncer

__all__ = [
    "SurfaceKind",
    "SurfaceContext",
    "SurfaceHandle",
    "FlatAdapter",
    "StructuredAdapter",
    "adapter_for",
]

LOGGER = logging.getLogger(__name__)


class SurfaceKind(str, Enum):
    FLAT = "flat"
    STRUCTURED = "structured"


@dataclass(slots=True, frozen=True)
class SurfaceContext:
    """Text of the scanned scope and the caret offset inside it.

    For structured surfaces ``node`` is the text node the scope was read from.
    """

    full_text: str
    cursor_offset: int
    node: Optional[Text] = None

    @property
    def before_cursor(self) -> str:
        return self.full_text[: self.cursor_offset]

    @property
    def after_cursor(self) -> str:
        return self.full_text[self.cursor_offset :]


class FlatAdapter:
    """Value plus linear selection (``<input>``, ``<textarea>``)."""

    kind = SurfaceKind.FLAT

    def read_context(self, element: Element) -> SurfaceContext | None:
        try:
            value = element.value  # type: ignore[attr-defined]
            offset = element.selection_start  # type: ignore[attr-defined]
            end = element.selection_end  # type: ignore[attr-defined]
            if offset is None or not 0 <= offset <= len(value):
                return None
            if end is not None and end != offset:
                return None
            return SurfaceContext(full_text=value, cursor_offset=offset)
        except Exception:  # host APIs may throw on detached or exotic controls
            LOGGER.debug("Flat context unavailable for %r", element, exc_info=True)
            return None

    def write(self, element: Element, context: SurfaceContext, new_text: str, caret: int) -> None:
        """Replace the value and collapse the caret; all or nothing."""

        control: TextControl = element  # type: ignore[assignment]
        previous = control.value
        control.value = new_text
        try:
            control.set_selection_range(caret, caret)
        except Exception as exc:
            control.value = previous
            control.set_selection_range(context.cursor_offset, context.cursor_offset)
            raise SurfaceWriteError(f"Cannot place caret at {caret} in {element!r}") from exc

    def dispatch_change_signal(self, element: Element) -> None:
        element.dispatch_event(DomEvent("input", is_trusted=False))
        element.dispatch_event(DomEvent("change", is_trusted=False))


class StructuredAdapter:
    """Content-editable regions addressed through the document selection.

    The scope is the single text node holding the caret anchor; a trigger
    split across two text nodes is not recognised.
    """

    kind = SurfaceKind.STRUCTURED

    def read_context(self, element: Element) -> SurfaceContext | None:
        try:
            document = element.owner_document
            if document is None:
                return None
            selection = document.get_selection()
            if selection.range_count == 0 or not selection.is_collapsed:
                return None
            anchor = selection.anchor_node
            if not isinstance(anchor, Text) or not element.contains(anchor):
                return None
            offset = selection.anchor_offset
            if not 0 <= offset <= anchor.length:
                return None
            return SurfaceContext(full_text=anchor.data, cursor_offset=offset, node=anchor)
        except Exception:
            LOGGER.debug("Structured context unavailable for %r", element, exc_info=True)
            return None

    def write(self, element: Element, context: SurfaceContext, new_text: str, caret: int) -> None:
        node = context.node
        if node is None or not element.contains(node):
            raise SurfaceWriteError(f"Text node is no longer inside {element!r}")
        document = element.owner_document
        if document is None:
            raise SurfaceWriteError(f"{element!r} is not attached to a document")
        previous = node.data
        node.data = new_text
        try:
            document.get_selection().collapse(node, caret)
        except Exception as exc:
            node.data = previous
            raise SurfaceWriteError(f"Cannot place caret at {caret} in {element!r}") from exc

    def dispatch_change_signal(self, element: Element) -> None:
        element.dispatch_event(DomEvent("input", is_trusted=False))


SurfaceAdapter = FlatAdapter | StructuredAdapter

_ADAPTERS: Dict[SurfaceKind, SurfaceAdapter] = {
    SurfaceKind.FLAT: FlatAdapter(),
    SurfaceKind.STRUCTURED: StructuredAdapter(),
}


def adapter_for(kind: SurfaceKind) -> SurfaceAdapter:
    return _ADAPTERS[kind]


@dataclass(eq=False)
class SurfaceHandle:
    """Registry bookkeeping for one tracked element.

    The element is referenced weakly; :attr:`element` returns ``None`` once it
    has been collected.
    """

    element_ref: weakref.ReferenceType
    kind: SurfaceKind
    hostname: str = ""
    attached: bool = False
    listeners: Dict[str, Callable[[DomEvent], None]] = field(default_factory=dict)
    debouncer: Debouncer | None = None

    @classmethod
    def for_element(cls, element: Element, kind: SurfaceKind, hostname: str = "") -> "SurfaceHandle":
        return cls(element_ref=weakref.ref(element), kind=kind, hostname=hostname)

    @property
    def element(self) -> Any:
        return self.element_ref()

    @property
    def adapter(self) -> SurfaceAdapter:
        return _ADAPTERS[self.kind]

    def read_context(self) -> SurfaceContext | None:
        element = self.element
        if element is None:
            return None
        return self.adapter.read_context(element)

    def __repr__(self) -> str:
        return f"SurfaceHandle({self.kind.value}, {self.element!r})"
