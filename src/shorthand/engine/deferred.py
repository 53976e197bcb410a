"""Pending expansions for hosts that revert programmatic edits.

Records are keyed weakly by :class:`SurfaceHandle` and hold their text node
weakly, so a surface that leaves the page takes its record with it.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import Iterator

from ..host.dom import Element, Text
from ..surfaces.adapters import SurfaceHandle

__all__ = ["PendingExpansion", "PendingTracker"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingExpansion:
    original_text: str
    rewritten_text: str
    trigger: str
    caret: int
    node_ref: weakref.ReferenceType
    surface_text: str = ""

    @property
    def node(self) -> Text | None:
        return self.node_ref()

    def reverted_node(self, element: Element) -> Text | None:
        """Return the text node to re-apply the expansion to, if the host reverted it.

        A host may revert in place or re-render the surface with fresh text
        nodes. In the second case the surface text as a whole is compared with
        the text it held before the expansion, and the node now holding the
        original scope text is returned.
        """

        node = self.node
        if node is not None and element.contains(node):
            return node if node.data == self.original_text else None
        if element.text_content != self.surface_text:
            return None
        for candidate in element.iter_descendants():
            if isinstance(candidate, Text) and candidate.data == self.original_text:
                return candidate
        return None


class PendingTracker:
    def __init__(self) -> None:
        self._records: "weakref.WeakKeyDictionary[SurfaceHandle, PendingExpansion]" = (
            weakref.WeakKeyDictionary()
        )

    def stage(
        self,
        handle: SurfaceHandle,
        node: Text,
        *,
        original_text: str,
        rewritten_text: str,
        trigger: str,
        caret: int,
        surface_text: str = "",
    ) -> PendingExpansion:
        record = PendingExpansion(
            original_text=original_text,
            rewritten_text=rewritten_text,
            trigger=trigger,
            caret=caret,
            node_ref=weakref.ref(node),
            surface_text=surface_text,
        )
        self._records[handle] = record
        LOGGER.debug("Staged pending expansion for %r on %s", trigger, handle.hostname)
        return record

    def get(self, handle: SurfaceHandle) -> PendingExpansion | None:
        return self._records.get(handle)

    def pop(self, handle: SurfaceHandle) -> PendingExpansion | None:
        return self._records.pop(handle, None)

    def items(self) -> Iterator[tuple[SurfaceHandle, PendingExpansion]]:
        return iter(list(self._records.items()))

    def __contains__(self, handle: object) -> bool:
        return handle in self._records

    def __len__(self) -> int:
        return len(self._records)
