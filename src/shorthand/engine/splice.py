"""Pure splice computation shared by both trigger policies and both adapters."""

from __future__ import annotations

from dataclasses import dataclass

from .variables import CURSOR_MARKER

__all__ = ["Splice", "splice"]


@dataclass(slots=True, frozen=True)
class Splice:
    """Final text of the scanned scope and the caret offset inside it."""

    text: str
    caret: int


def splice(before: str, expansion: str, after: str, *, delimiter: str = "") -> Splice:
    """Join ``before + expansion + delimiter + after`` and place the caret.

    ``before`` is the scope text preceding the trigger word (the word itself
    already removed) and ``expansion`` the resolved template. When the
    expansion carries :data:`CURSOR_MARKER`, the first marker sets the caret
    and every marker is stripped; the delimiter is still appended after the
    full expansion. Otherwise the caret lands after the expansion and the
    delimiter.
    """

    index = expansion.find(CURSOR_MARKER)
    if index < 0:
        text = before + expansion + delimiter + after
        return Splice(text=text, caret=len(before) + len(expansion) + len(delimiter))

    head = expansion[:index]
    tail = expansion[index + len(CURSOR_MARKER):].replace(CURSOR_MARKER, "")
    text = before + head + tail + delimiter + after
    return Splice(text=text, caret=len(before) + len(head))
