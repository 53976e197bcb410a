"""Simulated typing against the headless document model.

Each keypress dispatches a trusted ``keydown`` on the focused element and,
unless a listener prevented the default action, inserts the character at the
caret and dispatches a trusted ``input`` event, mirroring browser order.
"""

from __future__ import annotations

import logging

from .dom import Document, DomEvent, Element, Text, TextControl

__all__ = ["Keyboard", "KEY_TEXT"]

LOGGER = logging.getLogger(__name__)

KEY_TEXT = {" ": " ", "Space": " ", "Spacebar": " ", "Tab": "\t", "Enter": "\n"}
_CHAR_KEYS = {" ": " ", "\t": "Tab", "\n": "Enter"}


class Keyboard:
    """Types into whatever element of ``document`` currently has focus."""

    def __init__(self, document: Document) -> None:
        self.document = document

    def type(self, text: str, *, target: Element | None = None) -> None:
        for char in text:
            self.press(_CHAR_KEYS.get(char, char), target=target)

    def press(self, key: str, *, shift: bool = False, target: Element | None = None) -> bool:
        """Press ``key``; returns ``False`` when the keydown was default-prevented."""

        element = target or self.document.active_element
        if element is None:
            raise ValueError("No element has focus")
        keydown = DomEvent("keydown", key=key, shift_key=shift)
        if not element.dispatch_event(keydown):
            LOGGER.debug("Default action of %r suppressed on %r", key, element)
            return False

        if key == "Backspace":
            changed = self._delete_backward(element)
        else:
            char = KEY_TEXT.get(key, key if len(key) == 1 else None)
            if char is None:
                return True
            changed = self._insert(element, char)
        if changed:
            element.dispatch_event(DomEvent("input", data=None if key == "Backspace" else key))
        return True

    # ------------------------------------------------------------------
    # Editing primitives
    # ------------------------------------------------------------------
    def _insert(self, element: Element, char: str) -> bool:
        if isinstance(element, TextControl):
            if char == "\n" and not element.multiline:
                return False
            start = element.selection_start or 0
            end = element.selection_end if element.selection_end is not None else start
            element.set_range_text(char, start, end)
            return True

        if not element.is_content_editable:
            return False
        selection = self.document.get_selection()
        anchor = selection.anchor_node
        if isinstance(anchor, Text) and element.contains(anchor):
            offset = selection.anchor_offset
            anchor.data = anchor.data[:offset] + char + anchor.data[offset:]
            selection.collapse(anchor, offset + len(char))
            return True
        node = self.document.create_text_node(char)
        element.append_child(node)
        selection.collapse(node, len(char))
        return True

    def _delete_backward(self, element: Element) -> bool:
        if isinstance(element, TextControl):
            start = element.selection_start or 0
            end = element.selection_end if element.selection_end is not None else start
            if start == end:
                if start == 0:
                    return False
                start -= 1
            element.set_range_text("", start, end)
            return True

        selection = self.document.get_selection()
        anchor = selection.anchor_node
        if not isinstance(anchor, Text) or not element.contains(anchor) or selection.anchor_offset == 0:
            return False
        offset = selection.anchor_offset
        anchor.data = anchor.data[: offset - 1] + anchor.data[offset:]
        selection.collapse(anchor, offset - 1)
        return True
