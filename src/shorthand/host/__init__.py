"""Headless host model: documents, selectors and simulated typing."""

from .dom import (
    Document,
    DomEvent,
    Element,
    FrameElement,
    MutationObserver,
    MutationRecord,
    Node,
    Selection,
    ShadowRoot,
    Text,
    TextControl,
)
from .keyboard import Keyboard

__all__ = [
    "Document",
    "DomEvent",
    "Element",
    "FrameElement",
    "Keyboard",
    "MutationObserver",
    "MutationRecord",
    "Node",
    "Selection",
    "ShadowRoot",
    "Text",
    "TextControl",
]
