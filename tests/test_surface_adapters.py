"""Tests for the flat and structured surface adapters."""

from __future__ import annotations

import gc

import pytest

from shorthand.errors import SurfaceWriteError
from shorthand.host.dom import Document, DomEvent, Element, TextControl
from shorthand.surfaces.adapters import (
    FlatAdapter,
    StructuredAdapter,
    SurfaceContext,
    SurfaceHandle,
    SurfaceKind,
)


def _textarea(document: Document, value: str = "") -> TextControl:
    field = document.create_element("textarea")
    document.body.append_child(field)
    assert isinstance(field, TextControl)
    field.value = value
    return field


def _editor(document: Document, *texts: str) -> Element:
    editor = document.create_element("div", contenteditable="true")
    document.body.append_child(editor)
    for text in texts:
        editor.append_child(document.create_text_node(text))
    return editor


class TestFlatAdapter:
    def test_reads_value_and_selection_start(self, document: Document) -> None:
        field = _textarea(document, "ok /ty")
        field.set_selection_range(3, 3)

        context = FlatAdapter().read_context(field)

        assert context == SurfaceContext(full_text="ok /ty", cursor_offset=3)
        assert context.before_cursor == "ok "
        assert context.after_cursor == "/ty"

    def test_range_selection_reports_no_context(self, document: Document) -> None:
        field = _textarea(document, "ok ty")
        field.set_selection_range(3, 5)

        assert FlatAdapter().read_context(field) is None

    def test_broken_selection_reports_no_context(self, document: Document) -> None:
        field = _textarea(document, "abc")
        field.selection_start = None

        assert FlatAdapter().read_context(field) is None

    def test_write_replaces_value_and_collapses_caret(self, document: Document) -> None:
        field = _textarea(document, "ty")
        adapter = FlatAdapter()
        context = adapter.read_context(field)
        assert context is not None

        adapter.write(field, context, "Thank you", 5)

        assert field.value == "Thank you"
        assert (field.selection_start, field.selection_end) == (5, 5)

    def test_failed_caret_placement_restores_value(self, document: Document) -> None:
        field = _textarea(document, "ty")
        adapter = FlatAdapter()
        context = adapter.read_context(field)
        assert context is not None

        with pytest.raises(SurfaceWriteError):
            adapter.write(field, context, "Thank you", -1)

        assert field.value == "ty"
        assert field.selection_start == 2

    def test_change_signal_is_untrusted_input_and_change(self, document: Document) -> None:
        field = _textarea(document)
        seen: list[DomEvent] = []
        field.add_event_listener("input", seen.append)
        field.add_event_listener("change", seen.append)

        FlatAdapter().dispatch_change_signal(field)

        assert [(event.type, event.is_trusted) for event in seen] == [("input", False), ("change", False)]


class TestStructuredAdapter:
    def test_scope_is_the_anchor_text_node(self, document: Document) -> None:
        editor = _editor(document, "first ", "second ty")
        node = editor.children[1]
        document.get_selection().collapse(node, 9)

        context = StructuredAdapter().read_context(editor)

        assert context is not None
        assert context.full_text == "second ty"
        assert context.cursor_offset == 9
        assert context.node is node

    def test_anchor_outside_text_reports_no_context(self, document: Document) -> None:
        editor = _editor(document, "ty")
        document.get_selection().collapse(editor, 1)

        assert StructuredAdapter().read_context(editor) is None

    def test_anchor_in_other_surface_reports_no_context(self, document: Document) -> None:
        editor = _editor(document, "ty")
        other = _editor(document, "brb")
        document.get_selection().collapse(other.children[0], 3)

        assert StructuredAdapter().read_context(editor) is None

    def test_write_updates_node_and_selection(self, document: Document) -> None:
        editor = _editor(document, "ty")
        node = editor.children[0]
        document.get_selection().collapse(node, 2)
        adapter = StructuredAdapter()
        context = adapter.read_context(editor)
        assert context is not None

        adapter.write(editor, context, "Thank you ", 10)

        selection = document.get_selection()
        assert editor.text_content == "Thank you "
        assert (selection.anchor_node, selection.anchor_offset) == (node, 10)

    def test_write_out_of_range_caret_restores_text(self, document: Document) -> None:
        editor = _editor(document, "ty")
        node = editor.children[0]
        document.get_selection().collapse(node, 2)
        adapter = StructuredAdapter()
        context = adapter.read_context(editor)
        assert context is not None

        with pytest.raises(SurfaceWriteError):
            adapter.write(editor, context, "short", 99)

        assert editor.text_content == "ty"

    def test_write_to_detached_node_fails(self, document: Document) -> None:
        editor = _editor(document, "ty")
        node = editor.children[0]
        document.get_selection().collapse(node, 2)
        adapter = StructuredAdapter()
        context = adapter.read_context(editor)
        assert context is not None
        node.remove()

        with pytest.raises(SurfaceWriteError):
            adapter.write(editor, context, "Thank you", 9)


def test_handle_holds_element_weakly() -> None:
    document = Document("https://example.com/")
    field = document.create_element("textarea")
    handle = SurfaceHandle.for_element(field, SurfaceKind.FLAT, document.hostname)

    assert handle.element is field
    assert isinstance(handle.adapter, FlatAdapter)

    del field
    gc.collect()

    assert handle.element is None
    assert handle.read_context() is None
