"""Keeps the registry in sync with documents that change after load."""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from ..events import Event, EventBus, ScanCompleted
from ..host.dom import Document, Element, FrameElement, MutationObserver, MutationRecord, Node, ShadowRoot
from .registry import SurfaceRegistry
from .scheduling import Debouncer, Scheduler

__all__ = ["TopologyWatcher"]

LOGGER = logging.getLogger(__name__)


class TopologyWatcher:
    """Observes document subtrees and re-scans when editable candidates appear.

    Additions schedule a debounced, single-flight re-scan of every watched
    document; removals release their surfaces immediately.
    """

    def __init__(
        self,
        registry: SurfaceRegistry,
        scheduler: Scheduler,
        *,
        delay_ms: int = 100,
        bus: EventBus[Event] | None = None,
    ) -> None:
        self._registry = registry
        self._bus = bus
        # One observer per watched document, covering its shadow and frame roots.
        self._observers: Dict[Document, MutationObserver] = {}
        self._debouncer = Debouncer(scheduler, delay_ms, self.rescan, name="topology-rescan")
        self.scan_count = 0

    @property
    def rescan_pending(self) -> bool:
        return self._debouncer.pending

    def watch(self, document: Document) -> int:
        """Scan ``document`` now and observe it; returns the number of new surfaces."""

        observer = self._observers.get(document)
        if observer is None:
            observer = self._observers[document] = MutationObserver(self._on_mutations)
        result = self._registry.scan(document)
        self._observe(observer, result.roots)
        LOGGER.debug("Watching %s (%d surfaces tracked)", document.url, len(result.added))
        return len(result.added)

    def unwatch(self, document: Document) -> None:
        """Stop observing ``document`` and every root observed on its behalf."""

        observer = self._observers.pop(document, None)
        if observer is not None:
            observer.disconnect()
        if not self._observers:
            self._debouncer.cancel()

    def rescan(self) -> None:
        self.scan_count += 1
        for document, observer in list(self._observers.items()):
            result = self._registry.scan(document)
            self._observe(observer, result.roots)
            self._publish(
                ScanCompleted(
                    hostname=document.hostname,
                    tracked=len(self._registry),
                    added=len(result.added),
                )
            )

    def disconnect(self) -> None:
        self._debouncer.cancel()
        for observer in self._observers.values():
            observer.disconnect()
        self._observers.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _observe(observer: MutationObserver, roots: Iterable[Node]) -> None:
        for root in roots:
            observer.observe(root)

    def _on_mutations(self, records: list[MutationRecord], observer: MutationObserver) -> None:
        schedule = False
        for record in records:
            for node in record.removed_nodes:
                released = self._registry.release_subtree(node)
                if released:
                    LOGGER.debug("Released %d surface(s) removed with %r", released, node)
            if not schedule:
                schedule = any(self._contains_candidate(node) for node in record.added_nodes)
        if schedule:
            self._debouncer.trigger()

    def _contains_candidate(self, node: Node) -> bool:
        if isinstance(node, ShadowRoot):
            return True
        nodes = [node, *node.iter_descendants()]
        for item in nodes:
            if not isinstance(item, Element):
                continue
            if item.shadow_root is not None or isinstance(item, FrameElement):
                return True
            if not self._registry.is_tracked(item) and self._registry.classify(item) is not None:
                return True
        return False

    def _publish(self, event: Event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
