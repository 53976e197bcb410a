"""Discovery and tracking of editable surfaces.

Tracked state lives in a weak side table keyed by element, so listeners are
attached at most once per element however often a document is re-scanned,
and entries vanish with their elements.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, Protocol

from ..config.options import EngineOptions
from ..errors import SecurityError
from ..events import Event, EventBus, SurfaceReleased, SurfaceTracked
from ..host.dom import Document, DomEvent, Element, FrameElement, Node, ShadowRoot, TextControl
from ..policy import SitePolicy
from .adapters import SurfaceHandle, SurfaceKind

__all__ = ["SurfaceListenerFactory", "ScanResult", "SurfaceRegistry", "TEXT_INPUT_TYPES"]

LOGGER = logging.getLogger(__name__)

TEXT_INPUT_TYPES = frozenset({"text", "search", "email", "url", "tel"})


class SurfaceListenerFactory(Protocol):
    """What the registry needs from the rewrite engine."""

    def listeners_for(self, handle: SurfaceHandle) -> Dict[str, Callable[[DomEvent], None]]:
        ...

    def forget(self, handle: SurfaceHandle) -> None:
        ...

    def watch_document(self, document: Document) -> None:
        ...


@dataclass(slots=True)
class ScanResult:
    """Roots visited by a scan and the surfaces it newly tracked."""

    roots: list[Node] = field(default_factory=list)
    added: list[SurfaceHandle] = field(default_factory=list)


def _hostname_of(node: Node) -> str:
    document = node.owner_document if not isinstance(node, Document) else node
    return document.hostname if document is not None else ""


class SurfaceRegistry:
    def __init__(
        self,
        engine: SurfaceListenerFactory,
        *,
        options: EngineOptions | None = None,
        bus: EventBus[Event] | None = None,
    ) -> None:
        self._engine = engine
        self._options = options or EngineOptions()
        self._site_policy: SitePolicy = self._options.site_policy()
        self._bus = bus
        self._tracked: "weakref.WeakKeyDictionary[Element, SurfaceHandle]" = weakref.WeakKeyDictionary()

    def update_options(self, options: EngineOptions) -> None:
        self._options = options
        self._site_policy = options.site_policy()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def handle_for(self, element: Element) -> SurfaceHandle | None:
        return self._tracked.get(element)

    def is_tracked(self, element: Element) -> bool:
        return element in self._tracked

    def handles(self) -> list[SurfaceHandle]:
        return list(self._tracked.values())

    def __len__(self) -> int:
        return len(self._tracked)

    def classify(self, element: Element) -> SurfaceKind | None:
        """Return the adapter kind for ``element``, or ``None`` when it is not editable."""

        if isinstance(element, TextControl):
            if element.tag_name == "textarea" or element.type in TEXT_INPUT_TYPES:
                return SurfaceKind.FLAT
            return None
        if element.tag_name == "input":
            return None
        parent = element.parent_element
        if parent is not None and parent.is_content_editable:
            # Nested editable content belongs to the outermost editable root.
            return None
        if element.is_content_editable:
            return SurfaceKind.STRUCTURED
        for selector in self._selectors_for(_hostname_of(element)):
            try:
                if element.matches(selector):
                    return SurfaceKind.STRUCTURED
            except ValueError as exc:
                LOGGER.warning("Ignoring invalid editable selector %r: %s", selector, exc)
        return None

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------
    def ensure_tracked(self, candidates: Iterable[Element]) -> list[SurfaceHandle]:
        """Track every editable candidate not tracked yet; returns the new handles."""

        added: list[SurfaceHandle] = []
        for element in candidates:
            if element in self._tracked:
                continue
            kind = self.classify(element)
            if kind is None:
                continue
            hostname = _hostname_of(element)
            handle = SurfaceHandle.for_element(element, kind, hostname)
            handle.listeners = self._engine.listeners_for(handle)
            for event_type, listener in handle.listeners.items():
                element.add_event_listener(event_type, listener)
            handle.attached = True
            self._tracked[element] = handle
            added.append(handle)
            LOGGER.debug("Tracking %s surface <%s> on %s", kind.value, element.tag_name, hostname or "<no host>")
            self._publish(SurfaceTracked(kind=kind.value, tag_name=element.tag_name, hostname=hostname))
        return added

    def release(self, element: Element) -> bool:
        """Detach listeners from ``element`` and forget it."""

        handle = self._tracked.pop(element, None)
        if handle is None:
            return False
        for event_type, listener in handle.listeners.items():
            element.remove_event_listener(event_type, listener)
        handle.attached = False
        self._engine.forget(handle)
        self._publish(SurfaceReleased(kind=handle.kind.value, tag_name=element.tag_name))
        return True

    def release_subtree(self, node: Node) -> int:
        """Release every tracked surface at or below ``node`` (shadow trees included)."""

        released = 0
        for element in self._tracked_in(node):
            if self.release(element):
                released += 1
        return released

    def release_all(self) -> None:
        for element in list(self._tracked.keys()):
            self.release(element)

    def scan(self, root: Node) -> ScanResult:
        """Track every surface under ``root``.

        Shadow roots and same-origin frame documents are scanned recursively;
        cross-origin frames are skipped.
        """

        result = ScanResult()
        for scope in self.iter_roots(root):
            result.roots.append(scope)
            if isinstance(scope, Document):
                self._engine.watch_document(scope)
            candidates = [node for node in scope.iter_descendants() if isinstance(node, Element)]
            if isinstance(root, Element) and scope is root:
                candidates.insert(0, root)
            result.added.extend(self.ensure_tracked(candidates))
        return result

    def iter_roots(self, root: Node) -> Iterator[Node]:
        """Yield ``root`` and every shadow root and reachable frame document below it."""

        pending: list[Node] = [root]
        while pending:
            scope = pending.pop(0)
            yield scope
            nodes: list[Node] = list(scope.iter_descendants())
            if isinstance(scope, Element):
                nodes.insert(0, scope)
            for node in nodes:
                if not isinstance(node, Element):
                    continue
                if node.shadow_root is not None:
                    pending.append(node.shadow_root)
                if isinstance(node, FrameElement):
                    try:
                        pending.append(node.content_document)
                    except SecurityError:
                        LOGGER.debug("Skipping cross-origin frame %s", node.src)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _selectors_for(self, hostname: str) -> tuple[str, ...]:
        return tuple(self._options.editable_selectors) + self._site_policy.editable_selectors(hostname)

    def _tracked_in(self, node: Node) -> list[Element]:
        found: list[Element] = []
        for element in list(self._tracked.keys()):
            current: Node | None = element
            while current is not None:
                if current is node:
                    found.append(element)
                    break
                if isinstance(current, ShadowRoot):
                    current = current.host
                elif isinstance(current, Document) and current.frame_element is not None:
                    current = current.frame_element
                else:
                    current = current.parent
        return found

    def _publish(self, event: Event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
