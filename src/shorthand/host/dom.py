"""Headless document model the expander runs against.

The model keeps only what the engine needs from a page: a node tree with
text nodes, shadow roots and frames, flat text controls exposing a value and
a linear selection, a document selection anchored in text nodes, bubbling
events that can be default-prevented, focus tracking and subtree mutation
observers. Everything runs synchronously on the caller's thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Sequence
from urllib.parse import urlparse

from ..errors import SecurityError
from .selectors import element_matches

__all__ = [
    "ELEMENT_NODE",
    "TEXT_NODE",
    "DOCUMENT_NODE",
    "DOCUMENT_FRAGMENT_NODE",
    "DomEvent",
    "EventListener",
    "Node",
    "Text",
    "Element",
    "TextControl",
    "FrameElement",
    "ShadowRoot",
    "Document",
    "Selection",
    "MutationRecord",
    "MutationObserver",
]

LOGGER = logging.getLogger(__name__)

ELEMENT_NODE = 1
TEXT_NODE = 3
DOCUMENT_NODE = 9
DOCUMENT_FRAGMENT_NODE = 11

_TEXT_CONTROL_TAGS = {"input", "textarea"}
_EDITABLE_VALUES = {"", "true", "plaintext-only"}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class DomEvent:
    """Event dispatched through the tree.

    ``is_trusted`` is ``True`` for events produced by (simulated) user input
    and ``False`` for events synthesised by scripts, the expander included.
    """

    def __init__(
        self,
        type: str,
        *,
        key: str | None = None,
        shift_key: bool = False,
        bubbles: bool = True,
        is_trusted: bool = True,
        data: str | None = None,
    ) -> None:
        self.type = type
        self.key = key
        self.shift_key = shift_key
        self.bubbles = bubbles
        self.is_trusted = is_trusted
        self.data = data
        self.target: Any = None
        self.current_target: Any = None
        self.default_prevented = False
        self.propagation_stopped = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def __repr__(self) -> str:
        return f"DomEvent({self.type!r}, key={self.key!r}, trusted={self.is_trusted})"


EventListener = Callable[[DomEvent], None]


class EventTarget:
    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def add_event_listener(self, type: str, listener: EventListener) -> None:
        """Register ``listener``; registering the same callable twice is a no-op."""

        bucket = self._listeners.setdefault(type, [])
        if listener not in bucket:
            bucket.append(listener)

    def remove_event_listener(self, type: str, listener: EventListener) -> None:
        bucket = self._listeners.get(type)
        if bucket and listener in bucket:
            bucket.remove(listener)

    def listener_count(self, type: str | None = None) -> int:
        if type is not None:
            return len(self._listeners.get(type, ()))
        return sum(len(bucket) for bucket in self._listeners.values())

    def _invoke_listeners(self, event: DomEvent) -> None:
        event.current_target = self
        for listener in list(self._listeners.get(event.type, ())):
            listener(event)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------
class Node(EventTarget):
    node_type = 0

    def __init__(self, owner_document: "Document | None" = None) -> None:
        super().__init__()
        self.parent: Node | None = None
        self.children: list[Node] = []
        self.owner_document = owner_document
        self._mutation_observers: list[MutationObserver] = []

    # Tree structure ----------------------------------------------------
    @property
    def parent_element(self) -> "Element | None":
        parent = self.parent
        return parent if isinstance(parent, Element) else None

    @property
    def parent_node(self) -> "Node | None":
        return self.parent

    def append_child(self, child: "Node") -> "Node":
        return self.insert_before(child, None)

    def append(self, *children: "Node | str") -> None:
        for child in children:
            if isinstance(child, str):
                child = Text(child, owner_document=self._document())
            self.append_child(child)

    def insert_before(self, child: "Node", reference: "Node | None") -> "Node":
        if child is self or child.contains(self):
            raise ValueError("Cannot insert a node into its own subtree")
        if child.parent is not None:
            child.parent.remove_child(child)
        index = len(self.children) if reference is None else self.children.index(reference)
        self.children.insert(index, child)
        child.parent = self
        child._adopt(self._document())
        self._queue_mutation(MutationRecord("childList", self, added_nodes=(child,)))
        return child

    def remove_child(self, child: "Node") -> "Node":
        self.children.remove(child)
        child.parent = None
        self._queue_mutation(MutationRecord("childList", self, removed_nodes=(child,)))
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def contains(self, other: "Node | None") -> bool:
        node = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def get_root_node(self) -> "Node":
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def is_connected(self) -> bool:
        root = self.get_root_node()
        if isinstance(root, ShadowRoot):
            return root.host.is_connected
        return isinstance(root, Document)

    def iter_descendants(self) -> Iterator["Node"]:
        """Depth-first walk of the light tree below this node."""

        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    @property
    def text_content(self) -> str:
        return "".join(node.data for node in self.iter_descendants() if isinstance(node, Text))

    @text_content.setter
    def text_content(self, value: str) -> None:
        for child in list(self.children):
            self.remove_child(child)
        if value:
            self.append_child(Text(value, owner_document=self._document()))

    # Helpers -------------------------------------------------------------
    def _document(self) -> "Document | None":
        return self.owner_document

    def _adopt(self, document: "Document | None") -> None:
        if document is None or self.owner_document is document:
            return
        self.owner_document = document
        for node in self.iter_descendants():
            node.owner_document = document

    def _queue_mutation(self, record: "MutationRecord") -> None:
        node: Node | None = self
        while node is not None:
            for observer in list(node._mutation_observers):
                observer._deliver(record)
            node = node.parent

    def _event_parent(self) -> "EventTarget | None":
        return self.parent


class Text(Node):
    node_type = TEXT_NODE

    def __init__(self, data: str = "", *, owner_document: "Document | None" = None) -> None:
        super().__init__(owner_document)
        self._data = data

    @property
    def data(self) -> str:
        return self._data

    @data.setter
    def data(self, value: str) -> None:
        old = self._data
        self._data = value
        if old != value:
            self._queue_mutation(MutationRecord("characterData", self, old_value=old))

    @property
    def length(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Text({self._data!r})"


class Element(Node):
    node_type = ELEMENT_NODE

    def __init__(
        self,
        tag_name: str,
        attributes: dict[str, str] | None = None,
        *,
        owner_document: "Document | None" = None,
    ) -> None:
        super().__init__(owner_document)
        self.tag_name = tag_name.lower()
        self.attributes: dict[str, str] = {
            str(name).lower(): str(value) for name, value in (attributes or {}).items()
        }
        self.shadow_root: ShadowRoot | None = None

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        return f"<{self.tag_name}{ident}>"

    # Attributes ----------------------------------------------------------
    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name.lower())

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name.lower()] = str(value)

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self.attributes

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name.lower(), None)

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")

    @property
    def class_list(self) -> list[str]:
        return self.attributes.get("class", "").split()

    @property
    def is_content_editable(self) -> bool:
        node: Element | None = self
        while node is not None:
            value = node.get_attribute("contenteditable")
            if value is not None:
                return value.strip().lower() in _EDITABLE_VALUES
            node = node.parent_element
        return False

    # Selectors -----------------------------------------------------------
    def matches(self, selector: str) -> bool:
        return element_matches(self, selector)

    def closest(self, selector: str) -> "Element | None":
        node: Element | None = self
        while node is not None:
            if node.matches(selector):
                return node
            node = node.parent_element
        return None

    def query_selector_all(self, selector: str) -> list["Element"]:
        return [
            node
            for node in self.iter_descendants()
            if isinstance(node, Element) and node.matches(selector)
        ]

    # Shadow DOM ------------------------------------------------------------
    def attach_shadow(self, mode: str = "open") -> "ShadowRoot":
        if self.shadow_root is not None:
            raise ValueError(f"{self!r} already hosts a shadow root")
        self.shadow_root = ShadowRoot(self, mode=mode)
        self._queue_mutation(MutationRecord("childList", self, added_nodes=(self.shadow_root,)))
        return self.shadow_root

    def _adopt(self, document: "Document | None") -> None:
        super()._adopt(document)
        if self.shadow_root is not None:
            self.shadow_root._adopt(document)

    # Events & focus ------------------------------------------------------
    def dispatch_event(self, event: DomEvent) -> bool:
        """Dispatch ``event`` on this element; returns ``False`` when default-prevented."""

        event.target = self
        target: EventTarget | None = self
        while target is not None:
            target._invoke_listeners(event)
            if not event.bubbles or event.propagation_stopped:
                break
            if isinstance(target, Node):
                target = target._event_parent()
            else:
                target = None
        return not event.default_prevented

    def focus(self) -> None:
        document = self.owner_document
        if document is not None:
            document._set_focus(self)

    def blur(self) -> None:
        document = self.owner_document
        if document is not None and document.active_element is self:
            document._set_focus(None)

    def click(self) -> None:
        self.dispatch_event(DomEvent("click"))


class TextControl(Element):
    """``<input>``/``<textarea>``: a flat value with a linear selection."""

    def __init__(
        self,
        tag_name: str,
        attributes: dict[str, str] | None = None,
        *,
        owner_document: "Document | None" = None,
    ) -> None:
        super().__init__(tag_name, attributes, owner_document=owner_document)
        self._value = self.attributes.pop("value", "")
        self.selection_start: int | None = len(self._value)
        self.selection_end: int | None = len(self._value)

    @property
    def type(self) -> str:
        if self.tag_name == "textarea":
            return "textarea"
        return (self.get_attribute("type") or "text").lower()

    @property
    def multiline(self) -> bool:
        return self.tag_name == "textarea"

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, text: str) -> None:
        self._value = str(text)
        end = len(self._value)
        self.selection_start = end
        self.selection_end = end

    def set_selection_range(self, start: int, end: int) -> None:
        length = len(self._value)
        if start < 0 or end < 0:
            raise ValueError("Selection offsets must be non-negative")
        start = min(start, length)
        end = min(end, length)
        if end < start:
            start = end
        self.selection_start = start
        self.selection_end = end

    def set_range_text(self, replacement: str, start: int, end: int) -> None:
        """Replace ``[start:end]`` and collapse the caret after the replacement."""

        self._value = self._value[:start] + replacement + self._value[end:]
        caret = start + len(replacement)
        self.selection_start = caret
        self.selection_end = caret


class FrameElement(Element):
    """``<iframe>``; its document is reachable only from the same origin."""

    def __init__(
        self,
        tag_name: str = "iframe",
        attributes: dict[str, str] | None = None,
        *,
        owner_document: "Document | None" = None,
    ) -> None:
        super().__init__(tag_name, attributes, owner_document=owner_document)
        self._content_document: Document | None = None

    @property
    def src(self) -> str:
        return self.get_attribute("src") or "about:blank"

    def _frame_document(self) -> "Document":
        if self._content_document is None:
            parent = self.owner_document
            src = self.src
            if src == "about:blank" and parent is not None:
                src = parent.url
            self._content_document = Document(src, frame_element=self)
        return self._content_document

    @property
    def content_document(self) -> "Document":
        document = self._frame_document()
        parent = self.owner_document
        if parent is not None and document.origin != parent.origin:
            raise SecurityError(
                f"Blocked a frame with origin {parent.origin!r} from accessing {document.origin!r}"
            )
        return document

    def load_document(self) -> "Document":
        """Return the frame document regardless of origin (the frame's own view)."""

        return self._frame_document()


class ShadowRoot(Node):
    node_type = DOCUMENT_FRAGMENT_NODE

    def __init__(self, host: Element, *, mode: str = "open") -> None:
        super().__init__(host.owner_document)
        self.host = host
        self.mode = mode

    def __repr__(self) -> str:
        return f"ShadowRoot(host={self.host!r})"

    def query_selector_all(self, selector: str) -> list[Element]:
        return [
            node
            for node in self.iter_descendants()
            if isinstance(node, Element) and node.matches(selector)
        ]

    def _event_parent(self) -> EventTarget | None:
        return self.host


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------
class Selection:
    """Document selection; only the caret (collapsed) case matters here."""

    def __init__(self) -> None:
        self.anchor_node: Node | None = None
        self.anchor_offset = 0
        self.focus_node: Node | None = None
        self.focus_offset = 0

    @property
    def range_count(self) -> int:
        return 0 if self.anchor_node is None else 1

    @property
    def is_collapsed(self) -> bool:
        return self.anchor_node is self.focus_node and self.anchor_offset == self.focus_offset

    def collapse(self, node: Node, offset: int = 0) -> None:
        limit = node.length if isinstance(node, Text) else len(node.children)
        if offset < 0 or offset > limit:
            raise IndexError(f"Offset {offset} is out of range for {node!r}")
        self.anchor_node = self.focus_node = node
        self.anchor_offset = self.focus_offset = offset

    def extend(self, node: Node, offset: int) -> None:
        if self.anchor_node is None:
            raise ValueError("Cannot extend an empty selection")
        self.focus_node = node
        self.focus_offset = offset

    def remove_all_ranges(self) -> None:
        self.anchor_node = self.focus_node = None
        self.anchor_offset = self.focus_offset = 0


# ---------------------------------------------------------------------------
# Mutation observation
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class MutationRecord:
    type: str
    target: Node
    added_nodes: Sequence[Node] = ()
    removed_nodes: Sequence[Node] = ()
    old_value: str | None = None


@dataclass(eq=False)
class MutationObserver:
    """Subtree observer delivering each record synchronously."""

    callback: Callable[[list[MutationRecord], "MutationObserver"], None]
    child_list_only: bool = True
    _targets: list[Node] = field(default_factory=list)

    def observe(self, target: Node) -> None:
        if self not in target._mutation_observers:
            target._mutation_observers.append(self)
            self._targets.append(target)

    def disconnect(self) -> None:
        for target in self._targets:
            if self in target._mutation_observers:
                target._mutation_observers.remove(self)
        self._targets.clear()

    def _deliver(self, record: MutationRecord) -> None:
        if self.child_list_only and record.type != "childList":
            return
        self.callback([record], self)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------
class Document(Node):
    node_type = DOCUMENT_NODE

    def __init__(self, url: str = "about:blank", *, frame_element: FrameElement | None = None) -> None:
        super().__init__(None)
        self.url = url
        self.frame_element = frame_element
        self.active_element: Element | None = None
        self._selection = Selection()
        self.body = Element("body", owner_document=self)
        self.append_child(self.body)

    def __repr__(self) -> str:
        return f"Document({self.url!r})"

    def _document(self) -> "Document":
        return self

    @property
    def hostname(self) -> str:
        return (urlparse(self.url).hostname or "").lower()

    @property
    def origin(self) -> str:
        parsed = urlparse(self.url)
        if not parsed.scheme or not parsed.netloc:
            return "null"
        return f"{parsed.scheme}://{parsed.netloc.lower()}"

    # Factories -------------------------------------------------------------
    def create_element(self, tag_name: str, **attributes: Any) -> Element:
        tag = tag_name.lower()
        attrs = {name.rstrip("_").replace("_", "-"): str(value) for name, value in attributes.items()}
        if tag in _TEXT_CONTROL_TAGS:
            return TextControl(tag, attrs, owner_document=self)
        if tag in {"iframe", "frame"}:
            return FrameElement(tag, attrs, owner_document=self)
        return Element(tag, attrs, owner_document=self)

    def create_text_node(self, data: str) -> Text:
        return Text(data, owner_document=self)

    def query_selector_all(self, selector: str) -> list[Element]:
        return [
            node
            for node in self.iter_descendants()
            if isinstance(node, Element) and node.matches(selector)
        ]

    # Selection & focus -------------------------------------------------
    def get_selection(self) -> Selection:
        return self._selection

    def _set_focus(self, element: Element | None) -> None:
        previous = self.active_element
        if previous is element:
            return
        self.active_element = element
        if previous is not None:
            previous.dispatch_event(DomEvent("blur", bubbles=False))
        if element is not None:
            if element.is_content_editable:
                self._place_caret_inside(element)
            element.dispatch_event(DomEvent("focus", bubbles=False))

    def _place_caret_inside(self, element: Element) -> None:
        selection = self._selection
        if selection.anchor_node is not None and element.contains(selection.anchor_node):
            return
        texts = [node for node in element.iter_descendants() if isinstance(node, Text)]
        if texts:
            selection.collapse(texts[-1], texts[-1].length)
        else:
            selection.collapse(element, len(element.children))

    def _event_parent(self) -> EventTarget | None:
        return None
